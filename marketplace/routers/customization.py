from typing import List, Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from .. import crud, models, schemas
from ..deps import get_db, require_permission

router = APIRouter(prefix="/api/admin/customization", tags=["customization"])
report_author = require_permission("reports", "create")


@router.get("/filters", response_model=List[schemas.SavedFilterRead])
async def list_filters(
    type: Optional[str] = None,
    db: Session = Depends(get_db),
    admin: models.User = Depends(report_author),
):
    return crud.list_filters(db, admin.id, type)


@router.post("/filters", response_model=schemas.SavedFilterRead, status_code=201)
async def save_filter(
    payload: schemas.SavedFilterCreate,
    db: Session = Depends(get_db),
    admin: models.User = Depends(report_author),
):
    return crud.save_filter(db, admin.id, payload)


@router.put("/filters/{filter_id}", response_model=schemas.SavedFilterRead)
async def update_filter(
    filter_id: int,
    payload: schemas.SavedFilterUpdate,
    db: Session = Depends(get_db),
    admin: models.User = Depends(report_author),
):
    return crud.update_filter(db, admin.id, filter_id, payload)


@router.put("/filters/{filter_id}/default", response_model=schemas.SavedFilterRead)
async def set_default_filter(filter_id: int, db: Session = Depends(get_db), admin: models.User = Depends(report_author)):
    return crud.set_default_filter(db, admin.id, filter_id)


@router.delete("/filters/{filter_id}")
async def delete_filter(filter_id: int, db: Session = Depends(get_db), admin: models.User = Depends(report_author)):
    crud.delete_filter(db, admin.id, filter_id)
    return {"deleted": filter_id}


@router.get("/reports", response_model=List[schemas.ReportConfigRead])
async def list_reports(db: Session = Depends(get_db), admin: models.User = Depends(report_author)):
    return crud.list_reports(db, admin.id)


@router.post("/reports", response_model=schemas.ReportConfigRead, status_code=201)
async def save_report(
    payload: schemas.ReportConfigIn,
    db: Session = Depends(get_db),
    admin: models.User = Depends(report_author),
):
    return crud.save_report(db, admin.id, payload)


@router.delete("/reports/{name}")
async def delete_report(name: str, db: Session = Depends(get_db), admin: models.User = Depends(report_author)):
    crud.delete_report(db, admin.id, name)
    return {"deleted": name}
