# asesor/core.py
import asyncio
import json
import logging
from typing import Any, Callable, Dict, List

from config import Config
from .classifier import tiene_intencion_contacto
from .criteria_extractor import extraer_filtros
from .errors import ErrorEntradaCliente, ErrorLimiteTasa
from .llm_client import ClienteLLM, construir_entrada
from .prompts import HANDOFF_REPLY, NO_DATA_REPLY, asegurar_disclaimer
from .rag import CatalogoProyectos, construir_contexto
from .rate_limit import LimitadorTasa
from .streaming import RespuestaStream
from .utils import sanitizar_historial, ultimo_mensaje_usuario

logger = logging.getLogger(__name__)

# ==========================================
#   LECTURA DEL CUERPO
# ==========================================
def leer_historial(cuerpo: bytes) -> List[Dict[str, str]]:
    try:
        payload: Any = json.loads(cuerpo)
    except ValueError:
        raise ErrorEntradaCliente("Formato de solicitud inválido.")

    mensajes = payload.get("messages") if isinstance(payload, dict) else None
    if not isinstance(mensajes, list) or not mensajes:
        raise ErrorEntradaCliente("Debes enviar mensajes para procesar la consulta.")

    historial = sanitizar_historial(mensajes)
    if not historial:
        raise ErrorEntradaCliente("No se encontraron mensajes válidos.")
    return historial

# ==========================================
#   PROCESADOR PRINCIPAL
# ==========================================
class AgenteChat:
    """
    Un turno de chat: límite de tasa → sanitización → derivación → filtros →
    catálogo → contexto → stream del modelo. Los proveedores de catálogo y
    modelo lanzan ServicioNoDisponible si faltan credenciales.
    """

    def __init__(
        self,
        limitador: LimitadorTasa,
        proveedor_catalogo: Callable[[], CatalogoProyectos],
        proveedor_llm: Callable[[], ClienteLLM],
    ):
        self.limitador = limitador
        self.proveedor_catalogo = proveedor_catalogo
        self.proveedor_llm = proveedor_llm

    async def procesar(self, cuerpo: bytes, ip: str) -> RespuestaStream:
        if not self.limitador.permitir(ip):
            raise ErrorLimiteTasa()

        historial = leer_historial(cuerpo)
        ultimo = ultimo_mensaje_usuario(historial)
        if not ultimo:
            raise ErrorEntradaCliente("Se requiere al menos un mensaje del usuario.")

        catalogo = self.proveedor_catalogo()

        async def registrar(respuesta: str):
            await asyncio.to_thread(catalogo.guardar_chat_log, ultimo, respuesta, ip, Config.SOURCE_LABEL)

        async def respuesta_fija(texto: str) -> RespuestaStream:
            # Se registran antes de enviarse
            await registrar(asegurar_disclaimer(texto))
            return RespuestaStream.desde_texto(texto, cta=True)

        # 1. Derivación explícita: ni catálogo ni modelo
        if tiene_intencion_contacto(ultimo):
            logger.info(f"[AGENT] Derivación a asesor solicitada por {ip}")
            return await respuesta_fija(HANDOFF_REPLY)

        # 2. Filtros + catálogo
        comunas = await asyncio.to_thread(catalogo.obtener_comunas)
        filtros = extraer_filtros(ultimo, comunas)
        logger.info(f"[AGENT] Filtros extraídos: {filtros.a_dict()}")

        proyectos = await asyncio.to_thread(catalogo.buscar_proyectos, filtros)
        if not proyectos:
            logger.info("[AGENT] Sin proyectos para esos filtros → respuesta sin datos")
            return await respuesta_fija(NO_DATA_REPLY)

        # 3. Modelo con contexto acotado
        llm = self.proveedor_llm()
        contexto = construir_contexto(proyectos)
        stream = await llm.abrir_stream(construir_entrada(historial, contexto))
        return RespuestaStream(llm.deltas(stream), al_finalizar=registrar, cta=False)
