# asesor/rag.py
import logging
import re
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from urllib.parse import quote

from pymongo import MongoClient
from pymongo.database import Database
from pymongo.errors import PyMongoError

from config import Config
from .criteria_extractor import Filtros
from .errors import ErrorCatalogo, ServicioNoDisponible
from .models import Proyecto, parsear_proyectos
from .utils import a_numero, construir_slug, formatear_miles, normalizar_texto

logger = logging.getLogger(__name__)

NO_DISPONIBLE = "Dato no disponible"

PROJECTION = {
    "_id": 1, "id": 1, "name": 1, "comuna": 1,
    "address": 1, "direccion": 1, "ubicacion": 1,
    "uf_min": 1, "uf_max": 1, "status": 1,
    "tipologias": 1, "tipologia": 1, "slug": 1, "project_url": 1,
}

# ==========================================
#   QUERY MONGO A PARTIR DE LOS FILTROS
# ==========================================
def _contiene(valor: str) -> Dict[str, str]:
    return {"$regex": re.escape(valor), "$options": "i"}

def construir_query(filtros: Filtros) -> Dict[str, Any]:
    query: Dict[str, Any] = {}

    if filtros.comuna:
        query["comuna"] = _contiene(filtros.comuna)

    # Sin uf_min/uf_max registrado el proyecto no cumple la comparación (semántica nativa de Mongo)
    if filtros.min_price is not None:
        query["uf_min"] = {"$gte": filtros.min_price}
    if filtros.max_price is not None:
        query["uf_max"] = {"$lte": filtros.max_price}

    if filtros.status:
        query["status"] = _contiene(filtros.status)

    if filtros.project_name:
        query["name"] = _contiene(filtros.project_name)

    if filtros.dormitorios:
        clausulas = []
        for n in filtros.dormitorios:
            patron = "STUDIO" if n == 0 else f"{n}D"
            clausulas.append({"tipologias": _contiene(patron)})
            clausulas.append({"tipologia": _contiene(patron)})
        query["$or"] = clausulas

    return query

# ==========================================
#   CATÁLOGO DE PROYECTOS
# ==========================================
class CatalogoProyectos:
    def __init__(self, db: Database):
        self.db = db
        self.proyectos = db[Config.COLLECTION_PROYECTOS]
        self.chat_logs = db[Config.COLLECTION_CHAT_LOGS]

    @classmethod
    def desde_config(cls) -> "CatalogoProyectos":
        if not Config.MONGO_URI:
            raise ServicioNoDisponible()
        client = MongoClient(Config.MONGO_URI, serverSelectionTimeoutMS=Config.MONGO_TIMEOUT_MS)
        return cls(client[Config.DB_NAME])

    def buscar_proyectos(self, filtros: Filtros, limit: int = Config.MAX_PROYECTOS) -> List[Proyecto]:
        query = construir_query(filtros)
        logger.info(f"[CATALOGO] Query: {query}")
        try:
            filas = list(self.proyectos.find(query, PROJECTION).limit(limit))
        except PyMongoError as e:
            logger.error(f"[CATALOGO] Error consultando proyectos: {e}")
            raise ErrorCatalogo() from e
        return parsear_proyectos(filas)

    def obtener_comunas(self, limit: int = Config.MAX_COMUNAS) -> List[str]:
        """Comunas distintas (orden de aparición). Si falla, lista vacía: el extractor usa la heurística."""
        try:
            filas = list(self.proyectos.find({"comuna": {"$ne": None}}, {"_id": 0, "comuna": 1}).limit(limit))
        except PyMongoError as e:
            logger.error(f"[CATALOGO] Error listando comunas: {e}")
            return []

        comunas = []
        for fila in filas:
            comuna = fila.get("comuna")
            if not isinstance(comuna, str):
                continue
            comuna = comuna.strip()
            if comuna and comuna not in comunas:
                comunas.append(comuna)
        return comunas

    def resumen_comunas(self) -> Dict[str, Any]:
        """Comunas ordenadas y rango UF global del catálogo (para los filtros del sitio)."""
        cursor = self.proyectos.find({}, {"_id": 0, "comuna": 1, "uf_min": 1, "uf_max": 1})

        comunas = set()
        uf_min: Optional[float] = None
        uf_max: Optional[float] = None
        for fila in cursor:
            comuna = fila.get("comuna")
            if isinstance(comuna, str) and comuna.strip():
                comunas.add(comuna.strip())

            minimo = a_numero(fila.get("uf_min"))
            maximo = a_numero(fila.get("uf_max"))
            if minimo is not None:
                uf_min = minimo if uf_min is None else min(uf_min, minimo)
            if maximo is not None:
                uf_max = maximo if uf_max is None else max(uf_max, maximo)

        return {"comunas": sorted(comunas, key=normalizar_texto), "uf": {"min": uf_min, "max": uf_max}}

    def guardar_chat_log(self, user_message: str, assistant_reply: str, ip: str, source: str = Config.SOURCE_LABEL):
        """Nunca lanza: un log fallido no cambia la respuesta al usuario."""
        try:
            self.chat_logs.insert_one({
                "user_message": user_message,
                "assistant_reply": assistant_reply,
                "ip": ip,
                "source": source,
                "created_at": datetime.now(timezone.utc),
            })
        except Exception as e:
            logger.error(f"[CATALOGO] Error insertando chat log: {e}")

# ==========================================
#   CONTEXTO PARA EL MODELO
# ==========================================
def formatear_rango_precio(minimo: Optional[float], maximo: Optional[float]) -> str:
    if minimo is None and maximo is None:
        return NO_DISPONIBLE
    if minimo is not None and maximo is not None:
        if minimo == maximo:
            return f"UF {formatear_miles(minimo)}"
        return f"Desde UF {formatear_miles(minimo)} hasta UF {formatear_miles(maximo)}"
    if minimo is not None:
        return f"Desde UF {formatear_miles(minimo)}"
    return f"Hasta UF {formatear_miles(maximo)}"

RE_TIPOLOGIA = re.compile(r"\b(\d+)\s*D\b", re.I)

def resumir_dormitorios(tipologias: Optional[str]) -> str:
    """'1D+1B, 2D+2B, 2D+1B' → '1, 2 dormitorios'."""
    if not tipologias:
        return NO_DISPONIBLE
    numeros = sorted({int(n) for n in RE_TIPOLOGIA.findall(tipologias)})
    if not numeros:
        return tipologias
    return f"{', '.join(str(n) for n in numeros)} dormitorios"

def link_proyecto(proyecto: Proyecto) -> str:
    if proyecto.project_url:
        return proyecto.project_url
    if proyecto.slug:
        return f"{Config.SITE_URL}/proyectos/{proyecto.slug}"
    slug = construir_slug(proyecto.comuna, proyecto.name)
    return f"{Config.SITE_URL}/proyectos?ref={quote(slug, safe='')}"

def construir_contexto(proyectos: List[Proyecto]) -> str:
    bloques = []
    for i, p in enumerate(proyectos, start=1):
        bloques.append("\n".join([
            f"Proyecto {i}: {p.name}",
            f"Comuna: {p.comuna or NO_DISPONIBLE}",
            f"Dirección: {p.address or NO_DISPONIBLE}",
            f"Estado comercial: {p.status or NO_DISPONIBLE}",
            f"Rango de precios: {formatear_rango_precio(p.uf_min, p.uf_max)}",
            f"Tipologías / Dormitorios: {resumir_dormitorios(p.tipologias)}",
            f"Link: {link_proyecto(p)}",
        ]))
    return "\n\n".join(bloques)
