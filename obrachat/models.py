from __future__ import annotations

from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class Product(BaseModel):
    """Catalog product as held in a knowledge snapshot."""
    model_config = ConfigDict(frozen=True)

    code: str
    name: str
    category: str
    price: float
    stock: int = 0
    visible: bool = True
    type: Optional[str] = None
    thickness: Optional[str] = None
    width: Optional[str] = None
    length: Optional[str] = None
    color: Optional[str] = None
    use: Optional[str] = None
    description: Optional[str] = None


class FAQ(BaseModel):
    """Question/answer pair served by the chatbot."""
    model_config = ConfigDict(frozen=True)

    question: str
    answer: str
    category: str = "general"


class Sender(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


class SessionStatus(str, Enum):
    ACTIVE = "active"
    CLOSED = "closed"


class ChatMessage(BaseModel):
    """Persisted transcript entry."""
    id: str
    text: str
    sender: Sender
    timestamp: float


class ConversationSession(BaseModel):
    """Full persisted record of one conversation."""
    model_config = ConfigDict(populate_by_name=True)

    session_id: str = Field(alias="sessionId")
    messages: List[ChatMessage] = Field(default_factory=list)
    collected_context: Dict[str, str] = Field(default_factory=dict, alias="collectedContext")
    status: SessionStatus = SessionStatus.ACTIVE
    created_at: float = Field(default=0.0, alias="createdAt")
    last_activity: float = Field(default=0.0, alias="lastActivity")


class ChatRequest(BaseModel):
    """Request payload for the message endpoint.

    Every field is optional at the schema level so that missing values reach the
    handler's own validation and produce its 400 message instead of a 422.
    """
    model_config = ConfigDict(populate_by_name=True)

    session_id: Optional[str] = Field(default=None, alias="sessionId")
    message: Optional[str] = None
    user_name: Optional[str] = Field(default=None, alias="userName")
    user_email: Optional[str] = Field(default=None, alias="userEmail")
    user_phone: Optional[str] = Field(default=None, alias="userPhone")
    is_first_message: Optional[bool] = Field(default=False, alias="isFirstMessage")


class ChatActions(BaseModel):
    """UI actions decoded from the markers embedded in a reply."""
    model_config = ConfigDict(populate_by_name=True)

    redirect_to_products: bool = Field(default=False, alias="redirectToProducts")
    open_whatsapp: bool = Field(default=False, alias="openWhatsApp")
    show_product: Optional[str] = Field(default=None, alias="showProduct")
    open_cart: bool = Field(default=False, alias="openCart")
    open_shipping_calculator: bool = Field(default=False, alias="openShippingCalculator")


class ChatResponse(BaseModel):
    """Response payload returned by the message endpoint."""
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    session_id: str = Field(alias="sessionId")
    response: str
    intentions: List[str]
    actions: ChatActions = Field(default_factory=ChatActions)
    timestamp: str


class HistoryResponse(BaseModel):
    """Response payload returned by the history endpoint."""
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    session: ConversationSession
    messages_count: int = Field(alias="messagesCount")
