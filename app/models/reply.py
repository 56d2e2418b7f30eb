from pydantic import BaseModel, Field
from typing import Annotated, List, Literal, Optional, Union

class ButtonOption(BaseModel):
    id: str
    label: str

class ListRow(BaseModel):
    id: str
    label: str
    detail: Optional[str] = None

class ListSection(BaseModel):
    title: str
    rows: List[ListRow] = []

class TextReply(BaseModel):
    type: Literal["text"] = "text"
    content: str

class ButtonSetReply(BaseModel):
    type: Literal["buttons"] = "buttons"
    content: str
    options: List[ButtonOption] = []

class SelectableListReply(BaseModel):
    type: Literal["list"] = "list"
    content: str
    sections: List[ListSection] = []

Reply = Annotated[
    Union[TextReply, ButtonSetReply, SelectableListReply],
    Field(discriminator="type"),
]
