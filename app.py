# app.py → API del Asesor VR (chat con catálogo + derivación a WhatsApp)
import logging
import time
from functools import lru_cache
from typing import Optional

import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, StreamingResponse
from pymongo.errors import PyMongoError

from config import Config
from asesor.core import AgenteChat
from asesor.errors import ErrorAgente, ServicioNoDisponible
from asesor.llm_client import ClienteLLM
from asesor.rag import CatalogoProyectos
from asesor.rate_limit import LimitadorTasa
from asesor.streaming import a_ndjson

logging.basicConfig(
    level=Config.LOG_LEVEL,
    format="%(asctime)s [%(levelname)s] %(message)s",
    handlers=[logging.StreamHandler()]
)
logger = logging.getLogger("asesor-vr")


def obtener_ip_cliente(request: Request) -> str:
    header = (
        request.headers.get("x-forwarded-for") or
        request.headers.get("x-real-ip") or
        request.headers.get("cf-connecting-ip")
    )
    if header:
        return header.split(",")[0].strip() or "0.0.0.0"
    return "0.0.0.0"


def crear_app(agente: Optional[AgenteChat] = None) -> FastAPI:
    """
    El limitador y los proveedores se construyen una sola vez por app.
    Los tests pasan su propio AgenteChat con catálogo y modelo falsos.
    """
    if agente is None:
        agente = AgenteChat(
            LimitadorTasa(),
            lru_cache(maxsize=1)(CatalogoProyectos.desde_config),
            lru_cache(maxsize=1)(ClienteLLM.desde_config),
        )

    app = FastAPI(title="Asesor VR - Chat de proyectos")
    app.state.agente = agente
    app.state.inicio = time.time()

    @app.exception_handler(ErrorAgente)
    async def manejar_error_agente(request: Request, exc: ErrorAgente):
        if exc.status_code >= 500:
            logger.error(f"[AGENT] {type(exc).__name__}: {exc.mensaje}")
        return JSONResponse({"ok": False, "message": exc.mensaje}, status_code=exc.status_code)

    # ========================= CHAT =========================
    @app.post("/api/agent")
    async def agent(request: Request):
        ip = obtener_ip_cliente(request)
        cuerpo = await request.body()
        respuesta = await request.app.state.agente.procesar(cuerpo, ip)
        return StreamingResponse(a_ndjson(respuesta.eventos()), media_type="application/json")

    @app.get("/api/agent")
    async def agent_get():
        return JSONResponse(
            {"ok": False, "message": "Método no permitido. Usa POST."},
            status_code=405,
            headers={"Allow": "POST"},
        )

    # ========================= CATÁLOGO =========================
    @app.get("/api/catalog/comunas")
    def catalog_comunas(request: Request):
        vacio = {"comunas": [], "uf": {"min": None, "max": None}}
        try:
            catalogo = request.app.state.agente.proveedor_catalogo()
            return catalogo.resumen_comunas()
        except ServicioNoDisponible:
            logger.error("[CATALOGO] Falta configurar MONGO_URI")
            return vacio
        except PyMongoError as e:
            logger.error(f"[CATALOGO] Error consultando proyectos: {e}")
            return vacio

    @app.get("/health")
    async def health_check(request: Request):
        return {
            "status": "healthy",
            "rate_clients": len(request.app.state.agente.limitador),
            "uptime_seconds": int(time.time() - request.app.state.inicio),
        }

    return app


app = crear_app()

# ====================== ARRANQUE ======================
if __name__ == "__main__":
    logger.info(f"Asesor VR iniciado → http://localhost:{Config.PORT}")
    uvicorn.run("app:app", host="0.0.0.0", port=Config.PORT)
