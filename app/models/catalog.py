from pydantic import BaseModel
from typing import Optional, Union

class Product(BaseModel):
    id: str
    name: str
    description: str = ""
    price: Union[int, float] = 0
    category: Optional[str] = None
    image_url: Optional[str] = None

class Faq(BaseModel):
    id: str
    question: str
    answer: str = ""
    category: Optional[str] = None

class Interaction(BaseModel):
    id: str
    phone_number: str
    message: str = ""
    message_type: str = ""
    timestamp: Optional[str] = None
    session_id: Optional[str] = None
