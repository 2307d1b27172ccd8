"""Exceções do motor de grafo social e handlers FastAPI correspondentes.

A taxonomia segue os três tipos de falha que o motor pode reportar:

- falha de store (rede/banco) → `StoreError`
- falha de pré-condição (rejeitada antes de qualquer escrita) → `PreconditionError`
- falha parcial de uma sequência de escritas → `PartialTransitionError`

Nenhuma delas dispara retry ou compensação automática.
"""

from fastapi import Request, status
from fastapi.responses import JSONResponse

RETRY_PROMPT = "Something went wrong. Please try again."


class GraphError(Exception):
    """Base de todas as falhas do motor."""


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------


class StoreError(GraphError):
    """Falha de uma chamada ao document store."""


class DocumentNotFoundError(StoreError):
    """update_doc contra um documento inexistente.

    Args:
        collection: Caminho da coleção.
        doc_id: Id do documento procurado.
    """

    def __init__(self, collection: str, doc_id: str):
        self.collection = collection
        self.doc_id = doc_id
        super().__init__(f"Documento '{collection}/{doc_id}' não encontrado")


# ---------------------------------------------------------------------------
# Pré-condições
# ---------------------------------------------------------------------------


class PreconditionError(GraphError):
    """Ação rejeitada de forma síncrona, sem escrita no store.

    Args:
        user_message: Mensagem exibível ao usuário.
    """

    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, user_message: str):
        self.user_message = user_message
        super().__init__(user_message)


class NotAuthenticatedError(PreconditionError):
    status_code = status.HTTP_401_UNAUTHORIZED

    def __init__(self, user_message: str = "You must be logged in to do that."):
        super().__init__(user_message)


class AccountNotFoundError(PreconditionError):
    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self, account_id: str):
        self.account_id = account_id
        super().__init__("This account does not exist.")


class PostNotFoundError(PreconditionError):
    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self, post_id: str):
        self.post_id = post_id
        super().__init__("Post deleted.")


class FollowRequestNotFoundError(PreconditionError):
    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self, requester_id: str):
        self.requester_id = requester_id
        super().__init__("This follow request is no longer pending.")


class SelfFollowError(PreconditionError):
    def __init__(self):
        super().__init__("You cannot follow yourself.")


class PrivateContentError(PreconditionError):
    status_code = status.HTTP_403_FORBIDDEN

    def __init__(self, user_message: str = "You cannot bookmark posts from private accounts you don't follow."):
        super().__init__(user_message)


# ---------------------------------------------------------------------------
# Falha parcial
# ---------------------------------------------------------------------------


class PartialTransitionError(GraphError):
    """Uma etapa de um fluxo com várias escritas falhou.

    As etapas anteriores já foram aplicadas e não são desfeitas.

    Args:
        workflow: Nome do fluxo (ex: "follow").
        failed_step: Etapa que levantou a falha.
        completed_steps: Etapas aplicadas antes da falha.
    """

    def __init__(self, workflow: str, failed_step: str, completed_steps: list[str]):
        self.workflow = workflow
        self.failed_step = failed_step
        self.completed_steps = list(completed_steps)
        super().__init__(
            f"{workflow}: etapa '{failed_step}' falhou após {self.completed_steps}"
        )


# ---------------------------------------------------------------------------
# Handlers FastAPI
# ---------------------------------------------------------------------------


async def precondition_error_handler(request: Request, exc: PreconditionError):
    """Converte uma pré-condição violada na mensagem exibida ao usuário."""
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": type(exc).__name__,
            "detail": exc.user_message,
        },
    )


async def store_error_handler(request: Request, exc: StoreError):
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"error": "StoreError", "detail": RETRY_PROMPT},
    )


async def partial_transition_handler(request: Request, exc: PartialTransitionError):
    """Falha parcial: o cliente deve reverter a atualização otimista.

    As etapas concluídas são informadas para que a UI possa oferecer
    o reparo (POST /maintenance/reconcile).
    """
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={
            "error": "PartialTransitionError",
            "detail": RETRY_PROMPT,
            "workflow": exc.workflow,
            "failed_step": exc.failed_step,
            "completed_steps": exc.completed_steps,
        },
    )


async def value_error_handler(request: Request, exc: ValueError):
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"error": "Invalid Value", "detail": str(exc)},
    )
