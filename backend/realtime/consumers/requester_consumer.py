"""Requester WebSocket consumer: receives quote, dispatch and job events."""

from .base import BaseConsumer


class RequesterConsumer(BaseConsumer):

    async def on_connect(self):
        if self.role != "requester":
            await self.send_error("This endpoint is for requesters only")
            await self.close()
            return

        await self.send_json({
            "type": "connection_established",
            "user_id": self.user_id,
            "role": self.role,
        })
