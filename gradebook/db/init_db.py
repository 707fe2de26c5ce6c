from gradebook.db.base_class import Base
from gradebook.db.session import engine

# import models so SQLAlchemy registers them
from gradebook.models import category, gradebook, item, user_grade  # noqa: F401


def init_db() -> None:
    Base.metadata.create_all(bind=engine)
