"""
socialgraph/dependencies.py

Providers de dependência FastAPI.

O engine é um singleton por processo (lru_cache); os testes trocam a
instância via `api.dependency_overrides[get_engine]`.
"""

from functools import lru_cache
from typing import Annotated

from fastapi import Depends, Header

from socialgraph.engine import Engine, build_engine
from socialgraph.exceptions import NotAuthenticatedError


@lru_cache(maxsize=1)
def get_engine() -> Engine:
    return build_engine()


def current_viewer(x_user_id: Annotated[str | None, Header()] = None) -> str:
    """
    Conta que faz a requisição, lida do header `X-User-Id`.
    A autenticação em si fica fora do motor.
    """
    if not x_user_id:
        raise NotAuthenticatedError()
    return x_user_id


EngineDep = Annotated[Engine, Depends(get_engine)]
ViewerDep = Annotated[str, Depends(current_viewer)]
