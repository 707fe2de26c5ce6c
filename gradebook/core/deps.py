from fastapi import Depends, HTTPException
from sqlalchemy.orm import Session

from gradebook.core.result import Result
from gradebook.db.session import SessionLocal
from gradebook.services.lifecycle import GradebookService


# every request that needs DB will get a fresh session, and it will always close.
def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_service(db: Session = Depends(get_db)) -> GradebookService:
    return GradebookService(db)


def unwrap(result: Result):
    """Value of a successful result; otherwise the matching HTTP error."""
    if not result.ok:
        raise HTTPException(
            status_code=result.error.status_code,
            detail=result.error.detail,
        )
    return result.value
