"""Operator WebSocket consumer for dispatch offers and location reports."""

import logging
from typing import Dict, Any

from channels.db import database_sync_to_async

from services.exceptions import MarketplaceError
from .base import BaseConsumer

logger = logging.getLogger(__name__)


class OperatorConsumer(BaseConsumer):
    """
    WebSocket consumer for operators.
    
    Handles:
        - Dispatch offers and quote/job events pushed by the server
        - Last-known location reports (persisted, never rebroadcast)
    """

    async def on_connect(self):
        if self.role != "operator":
            await self.send_error("This endpoint is for operators only")
            await self.close()
            return

        self.operator_group = f"operator_{self.user_id}"
        await self._join_group(self.operator_group)

        await self.send_json({
            "type": "connection_established",
            "user_id": self.user_id,
            "role": self.role,
            "message": "Operator connected successfully",
        })

    async def handle_message(self, msg_type: str, data: Dict[str, Any]):
        if msg_type == "location_update":
            await self._handle_location_update(data)
        else:
            await self.send_error(f"Unknown message type: {msg_type}")

    async def _handle_location_update(self, data: Dict[str, Any]):
        lat = data.get("latitude")
        lon = data.get("longitude")

        if lat is None or lon is None:
            await self.send_error("location_update requires latitude and longitude")
            return

        try:
            await self._save_location(float(lat), float(lon))
        except (TypeError, ValueError, MarketplaceError) as e:
            await self.send_error(f"Could not save location: {e}")
            return
        await self.send_json({"type": "location_saved", "latitude": lat, "longitude": lon})

    @database_sync_to_async
    def _save_location(self, lat: float, lon: float):
        from services.presence import update_operator_location
        update_operator_location(self.user, lat, lon)
