"""
socialgraph/models/document.py

Modelo ORM do document store.

Cada linha é um documento JSON sem schema, endereçado por coleção + id.
Subcoleções usam o caminho completo como nome da coleção,
ex: "users/alice/bookmarkedPosts".
"""

from datetime import datetime, timezone
from typing import Any

from sqlalchemy import JSON, DateTime, String
from sqlalchemy.orm import Mapped, mapped_column

from socialgraph.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Document(Base):
    __tablename__ = "documents"

    # Caminho da coleção, ex: "users", "posts", "users/alice/inspoBoards"
    collection: Mapped[str] = mapped_column(String(512), primary_key=True)

    doc_id: Mapped[str] = mapped_column(String(128), primary_key=True)

    # JSON não rastreia mutações in-place: o store sempre atribui um dict novo
    data: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        insert_default=_utcnow,
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        insert_default=_utcnow,
        onupdate=_utcnow,
    )

    def __repr__(self) -> str:
        return f"<Document {self.collection}/{self.doc_id}>"
