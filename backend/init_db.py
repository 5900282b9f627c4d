from sqlalchemy import inspect, text
from sqlalchemy.exc import SQLAlchemyError
from app.db.session import engine, Base
from app.utils.logger import get_logger

# Import all models before create_all
from app.models import user, blocked_user, conversation, message  # noqa: F401

logger = get_logger("init_db")


def create_missing_tables():
    logger.info("Creating missing tables...")
    Base.metadata.create_all(bind=engine)
    logger.info("Tables created successfully (if missing).")


def add_missing_columns():
    """Add columns that exist on the models but not yet in the database."""
    inspector = inspect(engine)
    with engine.connect() as conn:
        for table_name, model_table in Base.metadata.tables.items():
            if table_name not in inspector.get_table_names():
                logger.warning("Table %s not found in DB, creating it...", table_name)
                model_table.create(bind=engine, checkfirst=True)
                continue
            existing_cols = [col["name"] for col in inspector.get_columns(table_name)]
            for col_name, col in model_table.columns.items():
                if col_name in existing_cols:
                    continue
                sql = f'ALTER TABLE "{table_name}" ADD COLUMN "{col_name}" {col.type.compile(engine.dialect)};'
                logger.info("Adding column %s.%s", table_name, col_name)
                try:
                    conn.execute(text(sql))
                    conn.commit()
                except SQLAlchemyError:
                    logger.exception("Error adding column %s.%s", table_name, col_name)
                    conn.rollback()


if __name__ == "__main__":
    logger.info("Syncing database...")
    create_missing_tables()
    add_missing_columns()
    logger.info("Database sync complete.")
