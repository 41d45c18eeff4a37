# asesor/__init__.py
