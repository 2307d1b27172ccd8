"""
socialgraph/database.py

Configuração do banco via SQLAlchemy assíncrono.

O banco faz o papel do document store remoto: cada registro é um documento
JSON identificado por (coleção, id). Não há transação entre documentos: o
acesso passa sempre pelo `DocumentStore` (services/store.py), que abre uma
transação curta por chamada.

Exporta:
- `engine`: engine assíncrona compartilhada
- `async_session_factory`: fábrica de sessões usada pelo DocumentStore
- `Base`: classe base para os modelos ORM
- `init_db()`: cria as tabelas na inicialização da aplicação
"""

from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from socialgraph.config import settings

# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------

engine = create_async_engine(
    settings.database_url,
    echo=False,
    connect_args={"check_same_thread": False},
)

# ---------------------------------------------------------------------------
# Fábrica de sessões
# ---------------------------------------------------------------------------

async_session_factory = async_sessionmaker(
    bind=engine,
    expire_on_commit=False,  # evita lazy-load após commit em contexto assíncrono
    class_=AsyncSession,
)


# ---------------------------------------------------------------------------
# Base declarativa
# ---------------------------------------------------------------------------

class Base(DeclarativeBase):
    pass


# ---------------------------------------------------------------------------
# Inicialização
# ---------------------------------------------------------------------------

async def init_db() -> None:
    """
    Cria todas as tabelas definidas nos modelos ORM caso ainda não existam.
    Deve ser chamado uma única vez no startup da aplicação (lifespan do FastAPI).
    """
    # Registra o modelo no metadata da Base antes do create_all
    from socialgraph.models import document  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
