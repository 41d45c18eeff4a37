# asesor/errors.py
"""
Errores del agente. Cada uno lleva el código HTTP y el mensaje que ve el usuario;
app.py los transforma en {"ok": false, "message": ...}.
"""
from typing import Optional


class ErrorAgente(Exception):
    status_code = 500
    mensaje = "No fue posible procesar tu consulta. Contáctanos por WhatsApp."

    def __init__(self, mensaje: Optional[str] = None):
        self.mensaje = mensaje or self.mensaje
        super().__init__(self.mensaje)


class ErrorEntradaCliente(ErrorAgente):
    status_code = 400
    mensaje = "Formato de solicitud inválido."


class ErrorLimiteTasa(ErrorAgente):
    status_code = 429
    mensaje = (
        "Hemos recibido muchas consultas desde tu red. "
        "Intenta nuevamente en unos minutos o contáctanos por WhatsApp."
    )


class ServicioNoDisponible(ErrorAgente):
    status_code = 503
    mensaje = "Servicio temporalmente no disponible. Contáctanos por WhatsApp."


class ErrorCatalogo(ErrorAgente):
    status_code = 500
    mensaje = (
        "No fue posible obtener la información solicitada. "
        "Intenta nuevamente o contáctanos por WhatsApp."
    )


class ErrorModelo(ErrorAgente):
    status_code = 500
    mensaje = "No fue posible generar la respuesta en este momento. Contáctanos por WhatsApp."


class ErrorStreamModelo(ErrorAgente):
    """Falla a mitad del stream: ya se enviaron los headers, no hay status que devolver."""
    mensaje = "Error generando respuesta"
