from quill.models.post import Post
from quill.models.user import RefreshToken, User

__all__ = ["Post", "RefreshToken", "User"]
