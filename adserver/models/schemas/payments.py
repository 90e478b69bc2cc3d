from typing import Optional
from pydantic import BaseModel

class WebhookAck(BaseModel):
    received: bool = True
    outcome: Optional[str] = None
    campaign_id: Optional[int] = None
    notified: bool = False
