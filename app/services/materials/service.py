from sqlalchemy import or_
from sqlalchemy.orm import Session

from app.models.material import Material

# Поля, по которым админка может сортировать (?sort=...). Префикс "-" = по убыванию.
SORTABLE_FIELDS = ("id", "title", "format", "category", "created_at", "updated_at")


class MaterialService:
    def __init__(self, db: Session):
        self.db = db

    def list_filtered(
        self,
        format: str | None = None,
        category: str | None = None,
        search: str | None = None,
        sort: str | None = None,
    ) -> list[Material]:
        query = self.db.query(Material)
        if format:
            query = query.filter(Material.format == format)
        if category:
            query = query.filter(Material.category == category)
        if search:
            pattern = f"%{search}%"
            query = query.filter(or_(Material.title.ilike(pattern), Material.description.ilike(pattern)))
        query = query.order_by(*self._order_by(sort))
        return query.all()

    def get(self, material_id: int) -> Material | None:
        return self.db.query(Material).filter(Material.id == material_id).one_or_none()

    def create(self, data: dict) -> Material:
        material = Material(**data)
        self.db.add(material)
        self.db.commit()
        self.db.refresh(material)
        return material

    def update(self, material: Material, data: dict) -> Material:
        for key, value in data.items():
            setattr(material, key, value)
        self.db.add(material)
        self.db.commit()
        self.db.refresh(material)
        return material

    def delete(self, material: Material) -> None:
        self.db.delete(material)
        self.db.commit()

    @staticmethod
    def _order_by(sort: str | None) -> list:
        if not sort:
            return [Material.id.asc()]
        descending = sort.startswith("-")
        field = sort.lstrip("-")
        if field not in SORTABLE_FIELDS:
            return [Material.id.asc()]
        column = getattr(Material, field)
        return [column.desc() if descending else column.asc()]
