#!/usr/bin/env python3

import logging
import asyncio
import yeelight_lan as yl

#logging.basicConfig(level=logging.DEBUG)

async def amain():
    # all parameters to DiscoveryClient are optional; they allow you to set the IP addresses to bind to, etc.
    async with yl.DiscoveryClient() as client:
        # Entering the client.search() context manager sends the M-SEARCH multicast query; replies are
        # collected from then on, so none are missed.
        async with client.search(response_wait_time=3.0) as search:
            # Iterating yields DiscoveryReply objects as they come in until the wait time has
            # elapsed or the max number of replies has been received.
            async for reply in search:
                print(f"{reply.address}  name={reply.datagram.hdr_name!r} power={reply.datagram.hdr_power}")
                # It is possible to exit the loop early here if you found what you're looking for

loop = asyncio.new_event_loop()
try:
    asyncio.set_event_loop(loop)
    loop.run_until_complete(amain())
finally:
    loop.close()
