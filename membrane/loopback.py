"""Loopback bridge - runs declarations in-process on asyncio behind the native calling contract.

Calls take the same ABI-shaped arguments the exported entry points take
(decimal strings for wide integers, length-prefixed buffers for compound
values, ``None`` for null pointers) and deliver encoded envelopes on a port,
so the wire format and the delivery rules can be exercised without a native
build.
"""

import asyncio
import logging
import re
import struct
from typing import AsyncIterator, Optional

from .codec import Codec, int_range
from .envelope import END_OF_STREAM, EnvelopeCodec, Err
from .errors import ApiError, EnvelopeDecodeFailure, EnvelopeEncodeFailure, MembraneError, TaskFailure
from .reflection import Reflection
from .registry import Registry
from .type_mapper import TypeMapper
from .types import Declaration, OutputStyle, Parameter

logger = logging.getLogger(__name__)


class Port:
    """Receiving end of one call: raw deliveries in the order they were posted"""

    def __init__(self, port_id: int):
        self.id = port_id
        self.closed = False
        self._queue: asyncio.Queue = asyncio.Queue()

    def post(self, data: bytes):
        if not self.closed:
            self._queue.put_nowait(bytes(data))

    def fail(self, error: Exception):
        """Deliver ``error`` to the receiver in place of a payload"""
        if not self.closed:
            self._queue.put_nowait(error)

    async def receive(self) -> bytes:
        data = await self._queue.get()
        if isinstance(data, Exception):
            raise data
        return data

    def pending(self) -> int:
        return self._queue.qsize()

    def close(self):
        self.closed = True


class TaskHandle:
    """Cancellation token of one spawned call"""

    def __init__(self, task: asyncio.Task):
        self._task = task
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def done(self) -> bool:
        return self._task.done()

    def cancel(self):
        """Abort the call. Cancelling again, or after completion, has no effect."""
        if self._cancelled:
            return
        self._cancelled = True
        self._task.cancel()

    async def wait(self):
        """Wait for the spawned work to finish, however it ends"""
        await asyncio.wait([self._task])


class Subscription:
    """One subscriber's view of a Broadcast"""

    def __init__(self, channel: "Broadcast", queue: asyncio.Queue):
        self._channel = channel
        self._queue = queue

    async def receive(self):
        """Next result, or None once the channel has closed"""
        return await self._queue.get()

    def detach(self):
        self._channel._detach(self._queue)


class Broadcast:
    """Shared external producer behind a Channel declaration.

    Every subscriber gets every result sent after it subscribed, in send
    order. Detaching one subscriber leaves the others untouched.
    """

    def __init__(self):
        self._subscribers: list[asyncio.Queue] = []
        self.closed = False

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def subscribe(self) -> Subscription:
        queue: asyncio.Queue = asyncio.Queue()
        if self.closed:
            queue.put_nowait(None)
        else:
            self._subscribers.append(queue)
        return Subscription(self, queue)

    def send(self, result):
        if self.closed:
            raise MembraneError("send on a closed channel")
        for queue in self._subscribers:
            queue.put_nowait(result)

    def close(self):
        self.closed = True
        for queue in self._subscribers:
            queue.put_nowait(None)

    def _detach(self, queue: asyncio.Queue):
        if queue in self._subscribers:
            self._subscribers.remove(queue)


class LoopbackBridge:
    """Native side of the loopback: bound implementations addressed by exported symbol.

    Serialized implementations are coroutine functions returning ``Ok``/``Err``;
    stream implementations return (or are coroutines returning) an async
    iterable of ``Ok``/``Err``; channels are bound to a ``Broadcast``.
    """

    def __init__(self, registry: Registry, reflection: Reflection):
        self.registry = registry
        self.schemas = reflection.schemas
        self._impls = {}
        self._ports: dict[int, Port] = {}
        self._next_port = 1

    def bind(self, symbol: str, impl):
        decl = self.registry.lookup(symbol)
        if decl.output_style is OutputStyle.CHANNEL and not isinstance(impl, Broadcast):
            raise TypeError(f"{symbol} is a channel and must be bound to a Broadcast")
        self._impls[symbol] = impl
        return self

    def open_port(self) -> Port:
        port = Port(self._next_port)
        self._ports[port.id] = port
        self._next_port += 1
        return port

    def close_port(self, port_id: int):
        port = self._ports.pop(port_id, None)
        if port is not None:
            port.close()

    def call(self, symbol: str, port_id: int, *args) -> Optional[TaskHandle]:
        """Spawn one call and return its handle at once, or None when an argument is rejected"""
        decl = self.registry.lookup(symbol)
        if symbol not in self._impls:
            raise MembraneError(f"no implementation bound for {symbol}")
        if len(args) != len(decl.params):
            raise TypeError(f"{symbol} takes {len(decl.params)} arguments after the port, got {len(args)}")
        impl = self._impls[symbol]
        port = self._ports[port_id]

        try:
            values = [self._argument(p, raw) for p, raw in zip(decl.params, args)]
        except EnvelopeDecodeFailure as e:
            logger.warning("%s: rejected argument: %s", symbol, e)
            return None

        if not decl.disable_logging:
            logger.debug("%s", symbol)
        codec = EnvelopeCodec(decl, self.schemas)
        if decl.output_style is OutputStyle.SERIALIZED:
            work = self._run_serialized(decl, codec, port, impl, values)
        elif decl.output_style is OutputStyle.STREAM_SERIALIZED:
            work = self._run_stream(decl, codec, port, impl, values)
        else:
            work = self._run_channel(decl, codec, port, impl.subscribe())
        return TaskHandle(asyncio.ensure_future(work))

    def _argument(self, param: Parameter, raw):
        kind = TypeMapper.abi(param.type).kind
        if raw is None and kind in ('opt_scalar', 'opt_string', 'opt_wide'):
            return None
        if kind in ('scalar', 'bool', 'opt_scalar'):
            ty = param.type.args[0] if kind == 'opt_scalar' else param.type
            return self._check_scalar(raw, ty, param.name)
        if raw is None:
            raise EnvelopeDecodeFailure(f"null pointer for `{param.name}`")
        if kind in ('string', 'opt_string'):
            if not isinstance(raw, str):
                raise EnvelopeDecodeFailure(f"`{param.name}` is not a string: {raw!r}")
            return raw
        if kind in ('wide', 'opt_wide'):
            ty = param.type.args[0] if kind == 'opt_wide' else param.type
            return self._parse_wide(raw, ty.name, param.name)

        data = bytes(raw)
        if len(data) < 8:
            raise EnvelopeDecodeFailure(f"buffer for `{param.name}` is missing its length prefix")
        length = struct.unpack('<Q', data[:8])[0]
        return Codec(self.schemas).decode(data[8:8 + length], param.type)

    def _check_scalar(self, raw, ty, name: str):
        try:
            Codec(self.schemas).encode(raw, ty)
        except EnvelopeEncodeFailure as e:
            raise EnvelopeDecodeFailure(f"`{name}` is not a valid {ty}: {e}") from e
        return raw

    def _parse_wide(self, raw: str, kind: str, name: str) -> int:
        if not isinstance(raw, str) or not re.fullmatch(r"[+-]?[0-9]+", raw):
            raise EnvelopeDecodeFailure(f"`{name}` is not a decimal {kind}: {raw!r}")
        value = int(raw)
        low, high = int_range(kind)
        if not low <= value <= high:
            raise EnvelopeDecodeFailure(f"`{name}` is out of range for {kind}: {raw}")
        return value

    async def _run_serialized(self, decl, codec, port, impl, values):
        try:
            result = await impl(*values)
        except Exception as e:
            if not decl.disable_logging:
                logger.error("%s: implementation raised %r", decl.symbol, e)
            port.fail(TaskFailure(f"{decl.symbol} raised {e!r}"))
            return
        self._post(decl, codec, port, result)

    async def _run_stream(self, decl, codec, port, impl, values):
        try:
            stream = impl(*values)
            if asyncio.iscoroutine(stream):
                stream = await stream
            try:
                async for result in stream:
                    self._post(decl, codec, port, result)
            finally:
                aclose = getattr(stream, 'aclose', None)
                if aclose is not None:
                    await aclose()
        except Exception as e:
            if not decl.disable_logging:
                logger.error("%s: implementation raised %r, ending the stream", decl.symbol, e)
        port.post(END_OF_STREAM)

    async def _run_channel(self, decl, codec, port, subscription: Subscription):
        try:
            while (result := await subscription.receive()) is not None:
                self._post(decl, codec, port, result)
            port.post(END_OF_STREAM)
        finally:
            subscription.detach()

    def _post(self, decl: Declaration, codec: EnvelopeCodec, port: Port, result):
        try:
            data = codec.encode(result)
        except EnvelopeEncodeFailure as e:
            if not decl.disable_logging:
                logger.error("%s: dropped a result that failed to serialize: %s", decl.symbol, e)
            return
        port.post(data)


class LoopbackClient:
    """Client side of the loopback, shaped like the generated API of one namespace"""

    def __init__(self, bridge: LoopbackBridge, namespace: str):
        self.bridge = bridge
        self.namespace = namespace

    def _declaration(self, name: str) -> Declaration:
        return self.bridge.registry.lookup(f"membrane_{self.namespace}_{name}")

    def _arguments(self, decl: Declaration, kwargs: dict) -> list:
        unknown = set(kwargs) - {p.name for p in decl.params}
        if unknown:
            raise TypeError(f"{decl.name}() got unexpected arguments: {', '.join(sorted(unknown))}")
        codec = Codec(self.bridge.schemas)
        args = []
        for p in decl.params:
            if p.name not in kwargs and not p.is_optional:
                raise TypeError(f"{decl.name}() missing required argument `{p.name}`")
            value = kwargs.get(p.name)
            kind = TypeMapper.abi(p.type).kind
            if kind in ('wide', 'opt_wide'):
                args.append(None if value is None else str(value))
            elif kind == 'buffer':
                payload = codec.encode(value, p.type)
                args.append(struct.pack('<Q', len(payload)) + payload)
            else:
                args.append(value)
        return args

    def _start(self, decl: Declaration, kwargs: dict) -> tuple[Port, TaskHandle]:
        args = self._arguments(decl, kwargs)
        port = self.bridge.open_port()
        handle = self.bridge.call(decl.symbol, port.id, *args)
        if handle is None:
            self.bridge.close_port(port.id)
            raise ValueError(f"{decl.symbol} rejected its arguments")
        return port, handle

    async def call(self, name: str, **kwargs):
        """Await the single result of a Serialized declaration; declared errors raise ApiError"""
        decl = self._declaration(name)
        if decl.output_style.is_stream:
            raise TypeError(f"{decl.symbol} is a {decl.output_style.value} declaration, use stream()")
        port, handle = self._start(decl, kwargs)
        try:
            result = EnvelopeCodec(decl, self.bridge.schemas).decode(await port.receive())
        finally:
            self.bridge.close_port(port.id)
        if isinstance(result, Err):
            raise ApiError(result.error)
        return result.value

    async def stream(self, name: str, **kwargs) -> AsyncIterator:
        """Yield ``Ok``/``Err`` items of a stream or channel; an error item does not end the stream.

        Closing the iterator early cancels the underlying call.
        """
        decl = self._declaration(name)
        if not decl.output_style.is_stream:
            raise TypeError(f"{decl.symbol} is a Serialized declaration, use call()")
        port, handle = self._start(decl, kwargs)
        codec = EnvelopeCodec(decl, self.bridge.schemas)
        try:
            while (data := await port.receive()) != END_OF_STREAM:
                yield codec.decode(data)
        finally:
            handle.cancel()
            self.bridge.close_port(port.id)

    async def values(self, name: str, **kwargs) -> AsyncIterator:
        """Like ``stream`` but yields plain values and raises ApiError on the first error item"""
        results = self.stream(name, **kwargs)
        try:
            async for result in results:
                if isinstance(result, Err):
                    raise ApiError(result.error)
                yield result.value
        finally:
            await results.aclose()

