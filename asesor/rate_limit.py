# asesor/rate_limit.py
import logging
import threading
import time
from typing import Callable, Dict, List

from config import Config

logger = logging.getLogger(__name__)


class LimitadorTasa:
    """
    Ventana deslizante en memoria por cliente (IP).
    Se construye una vez al iniciar la app y se inyecta al handler.
    El estado vive mientras viva el proceso; cada réplica tiene el suyo.
    """

    def __init__(
        self,
        ventana_segundos: float = Config.RATE_WINDOW_SECONDS,
        max_solicitudes: int = Config.RATE_MAX_REQUESTS,
        reloj: Callable[[], float] = time.monotonic,
    ):
        self.ventana_segundos = ventana_segundos
        self.max_solicitudes = max_solicitudes
        self._reloj = reloj
        self._registros: Dict[str, List[float]] = {}
        self._lock = threading.Lock()

    def permitir(self, cliente_id: str) -> bool:
        ahora = self._reloj()
        with self._lock:
            recientes = [ts for ts in self._registros.get(cliente_id, []) if ahora - ts <= self.ventana_segundos]
            recientes.append(ahora)
            self._registros[cliente_id] = recientes
            permitido = len(recientes) <= self.max_solicitudes

        if not permitido:
            logger.warning(f"[RATE] Límite excedido para {cliente_id}: {len(recientes)} solicitudes en {self.ventana_segundos}s")
        return permitido

    def __len__(self) -> int:
        return len(self._registros)
