from pydantic import BaseModel


class Operator(BaseModel):
    """Authenticated back-office operator (token subject)."""
    id: str
