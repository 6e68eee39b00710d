from pydantic import BaseModel
from typing import Optional

class BookRef(BaseModel):
    """Catalog view of a book: just enough to check ownership."""
    id: str
    ownerId: str
    title: Optional[str] = None
