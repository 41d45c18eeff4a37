# asesor/models.py
import logging
from typing import Any, Dict, Iterable, List, Optional

from pydantic import BaseModel, ConfigDict, ValidationError, field_validator, model_validator

from .utils import a_numero

logger = logging.getLogger(__name__)


class Proyecto(BaseModel):
    """Fila del catálogo `projects`, validada al salir de Mongo."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    id: str
    name: str
    comuna: Optional[str] = None
    address: Optional[str] = None
    uf_min: Optional[float] = None
    uf_max: Optional[float] = None
    status: Optional[str] = None
    tipologias: Optional[str] = None
    slug: Optional[str] = None
    project_url: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def _alias_campos(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        datos = dict(data)
        if datos.get("id") is None and datos.get("_id") is not None:
            datos["id"] = str(datos["_id"])
        # Campos heredados de la planilla original
        if not datos.get("address"):
            datos["address"] = datos.get("direccion") or datos.get("ubicacion")
        if not datos.get("tipologias"):
            datos["tipologias"] = datos.get("tipologia")
        return datos

    @field_validator("id", mode="before")
    @classmethod
    def _id_como_texto(cls, v: Any) -> Any:
        if isinstance(v, (int, float)) and not isinstance(v, bool):
            return str(v)
        return v

    @field_validator("name")
    @classmethod
    def _nombre_no_vacio(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("name vacío")
        return v

    @field_validator("uf_min", "uf_max", mode="before")
    @classmethod
    def _uf_numerica(cls, v: Any) -> Optional[float]:
        return a_numero(v)

    @field_validator("comuna", "address", "status", "tipologias", "slug", "project_url", mode="before")
    @classmethod
    def _texto_opcional(cls, v: Any) -> Optional[str]:
        if v is None:
            return None
        texto = str(v).strip()
        return texto or None


def parsear_proyectos(filas: Iterable[Dict[str, Any]]) -> List[Proyecto]:
    """Descarta (y registra) las filas que no cumplen el esquema en vez de confiar en ellas."""
    proyectos = []
    for fila in filas:
        try:
            proyectos.append(Proyecto.model_validate(fila))
        except ValidationError as e:
            logger.warning(f"[CATALOGO] Fila descartada ({fila.get('_id') or fila.get('id')}): {e.error_count()} errores")
    return proyectos
