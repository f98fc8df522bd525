from sqlalchemy.orm import declarative_base

Base = declarative_base()

# Importa os modelos para que sejam registrados com a Base
from app.models import user, password_reset  # noqa: E402,F401
