# tests/test_app.py
import asyncio
import json

import httpx
import openai
import pytest
from fastapi.testclient import TestClient
from pymongo.errors import OperationFailure

from app import crear_app
from config import Config
from asesor.core import AgenteChat
from asesor.errors import ServicioNoDisponible
from asesor.llm_client import ClienteLLM
from asesor.prompts import DISCLAIMER, HANDOFF_REPLY, NO_DATA_REPLY, asegurar_disclaimer
from asesor.rate_limit import LimitadorTasa

from conftest import CompletionsFalsas, cliente_llm_falso, leer_eventos


class ColeccionRota:
    def find(self, *args, **kwargs):
        raise OperationFailure("sin conexión")


def _chat(client, *contenidos, headers=None):
    mensajes = [{"role": "user", "content": c} for c in contenidos]
    return client.post("/api/agent", json={"messages": mensajes}, headers=headers)


def _texto(eventos):
    return "".join(e["value"] for e in eventos if e["type"] == "token")


def _sin_proveedor():
    raise ServicioNoDisponible()


# ==========================================
#   VALIDACIÓN DE ENTRADA
# ==========================================
def test_get_no_permitido(client):
    r = client.get("/api/agent")
    assert r.status_code == 405
    assert r.headers["allow"] == "POST"
    assert r.json()["ok"] is False


@pytest.mark.parametrize("cuerpo", [b"{no es json", b"[1, 2]", b'{"messages": []}', b'{"messages": "hola"}'])
def test_cuerpo_invalido(client, cuerpo):
    r = client.post("/api/agent", content=cuerpo, headers={"content-type": "application/json"})
    assert r.status_code == 400
    assert r.json()["ok"] is False


def test_sin_mensajes_validos(client):
    r = client.post("/api/agent", json={"messages": [{"role": "system", "content": "x"}]})
    assert r.status_code == 400
    assert r.json() == {"ok": False, "message": "No se encontraron mensajes válidos."}


def test_sin_mensaje_de_usuario(client):
    r = client.post("/api/agent", json={"messages": [{"role": "assistant", "content": "Hola"}]})
    assert r.status_code == 400


# ==========================================
#   LÍMITE DE TASA
# ==========================================
def test_tercera_solicitud_rechazada(catalogo, completions):
    agente = AgenteChat(
        LimitadorTasa(ventana_segundos=300, max_solicitudes=2),
        lambda: catalogo,
        lambda: cliente_llm_falso(completions),
    )
    client = TestClient(crear_app(agente))
    headers = {"x-forwarded-for": "9.9.9.9"}

    assert _chat(client, "hola", headers=headers).status_code == 200
    assert _chat(client, "hola", headers=headers).status_code == 200
    r = _chat(client, "hola", headers=headers)
    assert r.status_code == 429
    assert r.json()["ok"] is False
    # otra IP no comparte cuota
    assert _chat(client, "hola", headers={"x-forwarded-for": "8.8.8.8"}).status_code == 200


# ==========================================
#   DERIVACIÓN Y SIN DATOS
# ==========================================
def test_derivacion_no_consulta_catalogo_ni_modelo(client, catalogo, completions, db):
    r = _chat(client, "Quiero cotizar el proyecto Alto Ñuñoa")
    assert r.status_code == 200
    assert r.headers["content-type"].startswith("application/json")

    eventos = leer_eventos(r.text)
    assert eventos[0] == {"type": "metadata", "cta": True}
    assert eventos[-1] == {"type": "done"}
    assert _texto(eventos) == asegurar_disclaimer(HANDOFF_REPLY)
    assert catalogo.busquedas == []
    assert completions.llamadas == []

    logs = list(db[Config.COLLECTION_CHAT_LOGS].find())
    assert len(logs) == 1
    assert logs[0]["user_message"] == "Quiero cotizar el proyecto Alto Ñuñoa"


@pytest.mark.parametrize("mensaje,respuesta", [
    ("quiero hablar con un asesor", HANDOFF_REPLY),
    ("proyectos en Vitacura", NO_DATA_REPLY),
])
def test_respuesta_fija_se_registra_antes_de_enviarse(agente, db, mensaje, respuesta):
    cuerpo = json.dumps({"messages": [{"role": "user", "content": mensaje}]}).encode()
    asyncio.run(agente.procesar(cuerpo, "5.5.5.5"))

    # Sin consumir el stream el turno ya quedó registrado
    log = db[Config.COLLECTION_CHAT_LOGS].find_one()
    assert log["assistant_reply"] == asegurar_disclaimer(respuesta)
    assert log["ip"] == "5.5.5.5"


def test_sin_proyectos_responde_sin_datos(client, catalogo, completions):
    r = _chat(client, "Busco 2 dormitorios en Ñuñoa desde UF 2500")
    eventos = leer_eventos(r.text)

    assert eventos[0] == {"type": "metadata", "cta": True}
    assert _texto(eventos) == f"{NO_DATA_REPLY}\n\n{DISCLAIMER}"
    assert len(catalogo.busquedas) == 1
    assert catalogo.busquedas[0].dormitorios == (2,)
    assert catalogo.busquedas[0].min_price == 2500
    assert completions.llamadas == []


# ==========================================
#   RESPUESTA DEL MODELO
# ==========================================
def test_respuesta_del_modelo_con_contexto(client, db, completions, proyecto_nunoa):
    db[Config.COLLECTION_PROYECTOS].insert_one(proyecto_nunoa)

    r = _chat(client, "¿Qué proyectos tienen en Ñuñoa?", headers={"x-forwarded-for": "1.2.3.4, 10.0.0.1"})
    eventos = leer_eventos(r.text)

    assert eventos[0] == {"type": "metadata", "cta": False}
    assert eventos[1] == {"type": "token", "value": "Tenemos "}
    assert eventos[-1] == {"type": "done"}
    texto = _texto(eventos)
    assert texto == asegurar_disclaimer("Tenemos el proyecto Alto Ñuñoa.")

    mensajes = completions.llamadas[0]["messages"]
    assert "Proyecto 1: Alto Ñuñoa" in mensajes[1]["content"]
    assert mensajes[-1] == {"role": "user", "content": "¿Qué proyectos tienen en Ñuñoa?"}

    log = db[Config.COLLECTION_CHAT_LOGS].find_one()
    assert log["assistant_reply"] == texto
    assert log["ip"] == "1.2.3.4"
    assert log["source"] == "web_chat"


def test_sin_cabeceras_de_ip(client, db):
    _chat(client, "quiero cotizar")
    assert db[Config.COLLECTION_CHAT_LOGS].find_one()["ip"] == "0.0.0.0"


# ==========================================
#   FALLAS DE DEPENDENCIAS
# ==========================================
def test_catalogo_no_configurado(limitador, completions):
    agente = AgenteChat(limitador, _sin_proveedor, lambda: cliente_llm_falso(completions))
    r = _chat(TestClient(crear_app(agente)), "hola")
    assert r.status_code == 503
    assert r.json()["ok"] is False


def test_modelo_no_configurado(limitador, catalogo, db, proyecto_nunoa):
    db[Config.COLLECTION_PROYECTOS].insert_one(proyecto_nunoa)
    agente = AgenteChat(limitador, lambda: catalogo, _sin_proveedor)
    r = _chat(TestClient(crear_app(agente)), "proyectos en Ñuñoa")
    assert r.status_code == 503


def test_modelo_no_configurado_no_afecta_derivacion(limitador, catalogo):
    agente = AgenteChat(limitador, lambda: catalogo, _sin_proveedor)
    r = _chat(TestClient(crear_app(agente)), "quiero hablar con un asesor")
    assert r.status_code == 200


def test_falla_del_catalogo(client, catalogo):
    catalogo.proyectos = ColeccionRota()
    r = _chat(client, "proyectos en Ñuñoa")
    assert r.status_code == 500
    assert r.json()["ok"] is False


def test_falla_al_abrir_el_modelo(limitador, catalogo, db, proyecto_nunoa):
    db[Config.COLLECTION_PROYECTOS].insert_one(proyecto_nunoa)
    error = openai.APIConnectionError(request=httpx.Request("POST", "http://llm.local"))
    completions = CompletionsFalsas(error_al_abrir=error)
    agente = AgenteChat(limitador, lambda: catalogo, lambda: cliente_llm_falso(completions))

    r = _chat(TestClient(crear_app(agente)), "proyectos en Ñuñoa")
    assert r.status_code == 500
    assert r.json()["ok"] is False


def test_cliente_llm_sin_api_key(monkeypatch):
    monkeypatch.setattr(Config, "OPENAI_API_KEY", None)
    with pytest.raises(ServicioNoDisponible):
        ClienteLLM.desde_config()


# ==========================================
#   CATÁLOGO Y SALUD
# ==========================================
def test_comunas(client, db, proyecto_nunoa):
    db[Config.COLLECTION_PROYECTOS].insert_many([
        proyecto_nunoa,
        {"_id": "p-2", "name": "Vista", "comuna": "Las Condes", "uf_min": 5000, "uf_max": 8000},
    ])
    r = client.get("/api/catalog/comunas")
    assert r.status_code == 200
    assert r.json() == {"comunas": ["Las Condes", "Ñuñoa"], "uf": {"min": 2600, "max": 8000}}


def test_comunas_sin_catalogo(limitador):
    agente = AgenteChat(limitador, _sin_proveedor, _sin_proveedor)
    r = TestClient(crear_app(agente)).get("/api/catalog/comunas")
    assert r.status_code == 200
    assert r.json() == {"comunas": [], "uf": {"min": None, "max": None}}


def test_health(client):
    _chat(client, "quiero cotizar")
    r = client.get("/health")
    assert r.status_code == 200
    datos = r.json()
    assert datos["status"] == "healthy"
    assert datos["rate_clients"] == 1
