# auth_api/app/db/initial_data.py
import asyncio

from loguru import logger

# 1. Importar a Base
from app.db.base import Base
from app.db.session import get_async_engine, dispose_engine

# 2. Importar TODOS os seus modelos para que Base.metadata os conheça
from app.models import user # noqa F401


async def init_db(drop_existing: bool = False) -> None:
    engine = get_async_engine()
    async with engine.begin() as conn:
        if drop_existing:
            logger.info("Removendo todas as tabelas existentes (se houver)...")
            await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Tabelas verificadas/criadas com sucesso.")


async def main() -> None:
    logger.info("Iniciando a recriação do banco de dados (DROP ALL / CREATE ALL)...")
    try:
        await init_db(drop_existing=True)
    finally:
        # Garante que a engine seja descartada corretamente ao final
        await dispose_engine()
    logger.info("Processo de inicialização do banco de dados concluído.")


if __name__ == "__main__":
    asyncio.run(main())
