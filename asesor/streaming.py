# asesor/streaming.py
"""
Máquina de estados de la respuesta en streaming.

INIT → STREAMING → FINALIZING → DONE, con ERROR alcanzable desde STREAMING.
El productor (deltas del modelo) escribe eventos en un asyncio.Queue que un único
consumidor drena; `a_ndjson` traduce esos eventos al formato de la red
(un JSON por línea).
"""
import asyncio
import json
import logging
from enum import Enum
from typing import Any, AsyncIterable, AsyncIterator, Awaitable, Callable, Dict, Optional, Tuple

from .errors import ErrorStreamModelo
from .llm_client import DeltaModelo
from .prompts import asegurar_disclaimer

logger = logging.getLogger(__name__)

Evento = Dict[str, Any]


class Estado(str, Enum):
    INIT = "init"
    STREAMING = "streaming"
    FINALIZING = "finalizing"
    DONE = "done"
    ERROR = "error"


def evento_metadata(cta: bool) -> Evento:
    return {"type": "metadata", "cta": cta}

def evento_token(valor: str) -> Evento:
    return {"type": "token", "value": valor}

def evento_done() -> Evento:
    return {"type": "done"}


def cerrar_con_disclaimer(acumulado: str) -> Tuple[str, str]:
    """
    Devuelve (texto_final, sufijo). El cliente ya recibió `acumulado`, así que
    texto_final == acumulado + sufijo siempre.
    """
    final = asegurar_disclaimer(acumulado)
    if final.startswith(acumulado):
        return final, final[len(acumulado):]
    # asegurar_disclaimer recortó espacios que ya se enviaron
    base = acumulado.strip()
    sufijo = final[len(base):] if base else final
    return acumulado + sufijo, sufijo


class _Falla:
    def __init__(self, error: BaseException):
        self.error = error

_FIN = object()


class RespuestaStream:
    def __init__(
        self,
        deltas: AsyncIterable[DeltaModelo],
        al_finalizar: Optional[Callable[[str], Awaitable[None]]] = None,
        cta: bool = False,
    ):
        self._deltas = deltas
        self._al_finalizar = al_finalizar
        self.cta = cta
        self.estado = Estado.INIT
        self.acumulado = ""
        self.texto_final: Optional[str] = None

    @classmethod
    def desde_texto(cls, texto: str, al_finalizar=None, cta: bool = True) -> "RespuestaStream":
        """Respuesta fija (derivación / sin datos) con el mismo protocolo que el modelo."""
        async def _un_delta():
            yield DeltaModelo("delta", texto)
        return cls(_un_delta(), al_finalizar=al_finalizar, cta=cta)

    async def _producir(self, canal: asyncio.Queue):
        falla: Optional[_Falla] = None
        try:
            await canal.put(evento_metadata(self.cta))
            self.estado = Estado.STREAMING

            async for delta in self._deltas:
                if delta.tipo == "error":
                    logger.error(f"[STREAM] Error del modelo: {delta.texto}")
                    raise ErrorStreamModelo()
                self.acumulado += delta.texto
                await canal.put(evento_token(delta.texto))

            self.estado = Estado.FINALIZING
            self.texto_final, sufijo = cerrar_con_disclaimer(self.acumulado)
            if sufijo:
                await canal.put(evento_token(sufijo))
            if self._al_finalizar:
                try:
                    await self._al_finalizar(self.texto_final)
                except Exception as e:
                    # Un log fallido no corta la respuesta ya enviada
                    logger.error(f"[STREAM] Error guardando chat log: {e}")

            self.estado = Estado.DONE
            await canal.put(evento_done())
        except Exception as e:
            self.estado = Estado.ERROR
            falla = _Falla(e)
        finally:
            await self._cerrar_deltas()
            if falla:
                canal.put_nowait(falla)
            canal.put_nowait(_FIN)

    async def _cerrar_deltas(self):
        """Cierra el iterador del modelo (y con él la conexión HTTP) aunque el stream se corte."""
        aclose = getattr(self._deltas, "aclose", None)
        if aclose is None:
            return
        try:
            await aclose()
        except Exception as e:
            logger.error(f"[STREAM] Error cerrando el stream del modelo: {e}")

    async def eventos(self) -> AsyncIterator[Evento]:
        canal: asyncio.Queue = asyncio.Queue()
        tarea = asyncio.create_task(self._producir(canal))
        try:
            while True:
                item = await canal.get()
                if item is _FIN:
                    break
                if isinstance(item, _Falla):
                    if isinstance(item.error, ErrorStreamModelo):
                        raise item.error
                    raise ErrorStreamModelo() from item.error
                yield item
        finally:
            if not tarea.done():
                tarea.cancel()


async def a_ndjson(eventos: AsyncIterable[Evento]) -> AsyncIterator[str]:
    async for evento in eventos:
        yield json.dumps(evento, ensure_ascii=False) + "\n"
