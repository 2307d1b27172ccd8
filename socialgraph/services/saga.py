"""
socialgraph/services/saga.py

Execução de fluxos com várias escritas independentes.

O store não oferece transação entre documentos, então uma mudança de
relacionamento é uma lista ordenada de etapas nomeadas. Se uma etapa
falhar, as anteriores permanecem aplicadas: a falha é logada com o nome
da etapa e propagada como PartialTransitionError. O reparo é explícito
(FollowGraphService.reconcile_edge / workers/repair_worker.py).
"""

import logging
from typing import Any, Awaitable, Callable

from socialgraph.exceptions import PartialTransitionError, StoreError

log = logging.getLogger(__name__)

Step = Callable[[], Awaitable[Any]]


class Saga:
    def __init__(self, name: str, context: str = ""):
        self.name = name
        self.context = context
        self.completed: list[str] = []
        self._steps: list[tuple[str, Step]] = []

    def step(self, name: str, action: Step) -> "Saga":
        self._steps.append((name, action))
        return self

    @property
    def step_names(self) -> list[str]:
        return [name for name, _ in self._steps]

    async def run(self) -> list[str]:
        for name, action in self._steps:
            try:
                await action()
            except StoreError as e:
                log.error(
                    f"{self.name} [{self.context}]: etapa '{name}' falhou; "
                    f"concluídas sem rollback: {self.completed}",
                    exc_info=True,
                )
                raise PartialTransitionError(self.name, name, self.completed) from e
            self.completed.append(name)

        log.info(f"{self.name} [{self.context}] concluído: {self.completed}")
        return list(self.completed)
