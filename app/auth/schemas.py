from typing import Optional

from pydantic import BaseModel


class CurrentUser(BaseModel):
    """Lightweight representation of the authenticated caller.
    center_id scopes every account a batch creates.
    """

    id: str
    role: str
    center_id: Optional[str] = None
