import os

# Configuration
DATABASE_URL = os.getenv("DATABASE_URL", "mysql+pymysql://root:@localhost/ONEE_BonsMission")

# Origines autorisées pour le frontend (séparées par des virgules)
FRONTEND_ORIGINS = [
    origin.strip()
    for origin in os.getenv("FRONTEND_ORIGINS", "http://localhost:5173,http://127.0.0.1:5173").split(",")
    if origin.strip()
]

# Bons de mission
MISSION_REFERENCE_PREFIX = os.getenv("MISSION_REFERENCE_PREFIX", "OM")
CURRENCY = os.getenv("CURRENCY", "XOF")

# Seuils d'alerte de consommation budgétaire des projets (en %)
BUDGET_WARNING_THRESHOLD = 70
BUDGET_CRITICAL_THRESHOLD = 90
