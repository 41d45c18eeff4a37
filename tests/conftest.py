# tests/conftest.py
import asyncio
import json
from types import SimpleNamespace

import mongomock
import pytest
from fastapi.testclient import TestClient

from app import crear_app
from asesor.core import AgenteChat
from asesor.llm_client import ClienteLLM
from asesor.rag import CatalogoProyectos
from asesor.rate_limit import LimitadorTasa


# ==========================================
#   DOBLES DE PRUEBA
# ==========================================
class CatalogoEspia(CatalogoProyectos):
    """Catálogo real sobre mongomock que cuenta las búsquedas."""

    def __init__(self, db):
        super().__init__(db)
        self.busquedas = []

    def buscar_proyectos(self, filtros, limit=10):
        self.busquedas.append(filtros)
        return super().buscar_proyectos(filtros, limit)


class StreamFalso:
    """Imita el AsyncStream del SDK: iterable async y context manager que registra el cierre."""

    def __init__(self, piezas, error=None):
        self.piezas = piezas
        self.error = error
        self.cerrado = False

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        self.cerrado = True

    async def __aiter__(self):
        for pieza in self.piezas:
            yield SimpleNamespace(choices=[SimpleNamespace(delta=SimpleNamespace(content=pieza))])
        if self.error:
            raise self.error


class CompletionsFalsas:
    def __init__(self, piezas=(), error_en_stream=None, error_al_abrir=None):
        self.piezas = list(piezas)
        self.error_en_stream = error_en_stream
        self.error_al_abrir = error_al_abrir
        self.llamadas = []
        self.streams = []

    async def create(self, **kwargs):
        self.llamadas.append(kwargs)
        if self.error_al_abrir:
            raise self.error_al_abrir
        stream = StreamFalso(self.piezas, self.error_en_stream)
        self.streams.append(stream)
        return stream


def cliente_llm_falso(completions: CompletionsFalsas) -> ClienteLLM:
    client = SimpleNamespace(chat=SimpleNamespace(completions=completions))
    return ClienteLLM(client, modelo="modelo-test")


def leer_eventos(texto: str):
    return [json.loads(linea) for linea in texto.splitlines() if linea.strip()]


def recolectar(respuesta):
    async def _run():
        return [e async for e in respuesta.eventos()]
    return asyncio.run(_run())


# ==========================================
#   FIXTURES
# ==========================================
@pytest.fixture
def db():
    return mongomock.MongoClient()["vreyes_test"]


@pytest.fixture
def catalogo(db):
    return CatalogoEspia(db)


@pytest.fixture
def completions():
    return CompletionsFalsas(piezas=["Tenemos ", "el proyecto Alto Ñuñoa."])


@pytest.fixture
def limitador():
    return LimitadorTasa(ventana_segundos=300, max_solicitudes=60)


@pytest.fixture
def agente(limitador, catalogo, completions):
    return AgenteChat(limitador, lambda: catalogo, lambda: cliente_llm_falso(completions))


@pytest.fixture
def client(agente):
    return TestClient(crear_app(agente))


@pytest.fixture
def proyecto_nunoa():
    return {
        "_id": "p-1",
        "name": "Alto Ñuñoa",
        "comuna": "Ñuñoa",
        "direccion": "Av. Irarrázaval 3400",
        "uf_min": 2600,
        "uf_max": "3.900",
        "status": "En verde",
        "tipologias": "1D+1B, 2D+2B",
        "slug": "nunoa-alto-nunoa",
    }
