from inkpress.models.blog import Blog
from inkpress.models.conversation import Chat, Message
from inkpress.models.profile import Profile

__all__ = ["Blog", "Chat", "Message", "Profile"]
