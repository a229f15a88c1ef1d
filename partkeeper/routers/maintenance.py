from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import JSONResponse

from ..deps import get_maintainer, require_maintenance_token
from ..errors import PartitionKeeperError
from ..schemas import CatalogStatus, MaintenanceResult
from ..services import Maintainer

router = APIRouter(tags=["Maintenance"])


@router.get("/status", response_model=CatalogStatus)
def maintenance_status(maintainer: Maintainer = Depends(get_maintainer)):
    """
    Current partitions, high-water mark and the next partition to create.
    """
    try:
        return maintainer.status()
    except PartitionKeeperError as exc:
        code = status.HTTP_503_SERVICE_UNAVAILABLE if exc.retryable else status.HTTP_409_CONFLICT
        raise HTTPException(status_code=code, detail=exc.to_dict())


@router.post("/run", response_model=MaintenanceResult, dependencies=[Depends(require_maintenance_token)])
def maintenance_run(
    dry_run: bool = Query(False),
    maintainer: Maintainer = Depends(get_maintainer),
):
    """
    On-demand maintenance cycle. Safe to call repeatedly or concurrently
    with the scheduled worker.
    """
    result = maintainer.run_cycle(dry_run=dry_run)
    status_code = {0: 200, 1: 409, 2: 503}[result.exit_code]
    return JSONResponse(status_code=status_code, content=result.model_dump(mode="json"))
