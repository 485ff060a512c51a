from bookshare.extensions import db
from bookshare.models.user import User


class UserRepo:
    def get_by_id(self, user_id: str):
        return db.session.get(User, user_id)
