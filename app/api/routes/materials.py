"""
Content materials CRUD for the admin front end.
/api/admin/* paths are the legacy aliases the front end still calls.
"""
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from app.api.deps import require_admin_key
from app.db.session import get_db
from app.schemas.materials import MaterialIn, MaterialOut, MaterialUpdate
from app.services.materials.service import MaterialService

router = APIRouter(tags=["materials"])


def _get_or_404(svc: MaterialService, material_id: int):
    material = svc.get(material_id)
    if not material:
        raise HTTPException(status_code=404, detail="Material not found")
    return material


@router.get("/api/content/materials", response_model=list[MaterialOut])
def list_materials(
    format: str | None = None,
    category: str | None = None,
    search: str | None = None,
    sort: str | None = None,
    db: Session = Depends(get_db),
):
    return MaterialService(db).list_filtered(format=format, category=category, search=search, sort=sort)


@router.get("/api/content/materials/{material_id}", response_model=MaterialOut)
def get_material(material_id: int, db: Session = Depends(get_db)):
    return _get_or_404(MaterialService(db), material_id)


@router.post(
    "/api/content/materials",
    response_model=MaterialOut,
    dependencies=[Depends(require_admin_key)],
)
@router.post(
    "/api/admin/add-material",
    response_model=MaterialOut,
    dependencies=[Depends(require_admin_key)],
)
def create_material(payload: MaterialIn, db: Session = Depends(get_db)):
    return MaterialService(db).create(payload.model_dump())


@router.put(
    "/api/content/materials/{material_id}",
    response_model=MaterialOut,
    dependencies=[Depends(require_admin_key)],
)
@router.put(
    "/api/admin/edit-material/{material_id}",
    response_model=MaterialOut,
    dependencies=[Depends(require_admin_key)],
)
def update_material(material_id: int, payload: MaterialUpdate, db: Session = Depends(get_db)):
    svc = MaterialService(db)
    material = _get_or_404(svc, material_id)
    return svc.update(material, payload.model_dump(exclude_unset=True))


@router.delete("/api/content/materials/{material_id}", dependencies=[Depends(require_admin_key)])
@router.delete("/api/admin/delete-material/{material_id}", dependencies=[Depends(require_admin_key)])
def delete_material(material_id: int, db: Session = Depends(get_db)):
    svc = MaterialService(db)
    svc.delete(_get_or_404(svc, material_id))
    return {"ok": True, "id": material_id}
