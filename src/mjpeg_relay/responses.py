"""
Multipart Response
==================

StreamingResponse variant for held-open multipart bodies.

The body iterator is raced against the client's disconnect message and
is always closed when the response ends, so the watcher behind it is
unregistered deterministically: on client disconnect, on a failed
write, or when the relay closes the watcher.
"""

import asyncio
import logging

from fastapi.responses import StreamingResponse
from starlette.types import Receive, Scope, Send


logger = logging.getLogger(__name__)


class MultipartResponse(StreamingResponse):
    """StreamingResponse that always listens for disconnect and closes its body."""
    
    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        stream_task = asyncio.create_task(self.stream_response(send))
        disconnect_task = asyncio.create_task(self.listen_for_disconnect(receive))
        
        try:
            await asyncio.wait(
                {stream_task, disconnect_task},
                return_when=asyncio.FIRST_COMPLETED,
            )
        finally:
            for task in (stream_task, disconnect_task):
                task.cancel()
            results = await asyncio.gather(
                stream_task,
                disconnect_task,
                return_exceptions=True,
            )
            await self.body_iterator.aclose()
            
            for result in results:
                # OSError is the peer going away mid-write
                if isinstance(result, Exception) and not isinstance(result, OSError):
                    logger.error(f"Multipart response failed: {result!r}")
