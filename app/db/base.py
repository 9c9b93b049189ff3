from sqlalchemy import MetaData
from sqlalchemy.orm import DeclarativeBase

# Nomes estáveis para índices/constraints (unique de email, etc.)
NAMING_CONVENTION = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}

class Base(DeclarativeBase):
    """
    Classe base declarativa da qual todos os modelos ORM herdarão.
    """
    metadata = MetaData(naming_convention=NAMING_CONVENTION)
