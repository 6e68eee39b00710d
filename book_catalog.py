from typing import Optional, Protocol
from bson import ObjectId
from models.book_models import BookRef


class BookCatalog(Protocol):
    async def get_book(self, book_id: str) -> Optional[BookRef]:
        ...


class MongoBookCatalog:
    """Reads book ownership from the `books` collection.

    Books are written by the catalog side of the marketplace; the owner's
    user id lives in `user_id` and the title in `bookName`.
    """

    def __init__(self, db):
        self.db = db

    async def get_book(self, book_id: str) -> Optional[BookRef]:
        if not ObjectId.is_valid(book_id):
            return None
        book = await self.db.books.find_one({"_id": ObjectId(book_id)})
        if not book or book.get("user_id") is None:
            # no owner means no one can receive a request for it
            return None
        return BookRef(
            id=str(book["_id"]),
            ownerId=str(book.get("user_id")),
            title=book.get("bookName"),
        )
