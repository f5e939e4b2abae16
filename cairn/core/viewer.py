"""
Viewer Lifecycle Owner

Creates the render host, applies the home view and publishes the ready host to
scene consumers in registration order. Teardown runs in three phases so no
input callback can fire against a half-removed scene:

    1. every consumer releases its input handlers
    2. every consumer removes the entities it owns
    3. the host is destroyed
"""

from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Tuple

from cairn.core.models import CameraView
from cairn.core.renderHost import RenderHost
from cairnkit.logging import getLogger


HOME_VIEW = CameraView(lon=6.6347, lat=45.4164, height=15000.0, heading=0.0, pitch=-45.0, roll=0.0)  # Courchevel

# key -> (camera operation, direction or sign)
KEY_BINDINGS: Dict[str, Tuple[str, object]] = {
    'ArrowUp': ('move', 'forward'), 'w': ('move', 'forward'), 'W': ('move', 'forward'),
    'ArrowDown': ('move', 'backward'), 's': ('move', 'backward'), 'S': ('move', 'backward'),
    'ArrowLeft': ('move', 'left'), 'a': ('move', 'left'), 'A': ('move', 'left'),
    'ArrowRight': ('move', 'right'), 'd': ('move', 'right'), 'D': ('move', 'right'),
    'q': ('twist', -1.0), 'Q': ('twist', -1.0),
    'e': ('twist', 1.0), 'E': ('twist', 1.0),
}


class SceneConsumer:
    """
    A component that populates a render host.

    attach() receives a ready host; releaseInput() drops input callbacks only;
    detach() removes owned entities and forgets the host. All three must be
    safe to call repeatedly.
    """

    def attach(self, host: RenderHost) -> None:
        raise NotImplementedError

    def releaseInput(self) -> None:
        pass

    def detach(self) -> None:
        raise NotImplementedError


@dataclass
class ViewerOptions:
    homeView: CameraView = field(default_factory=lambda: HOME_VIEW)
    homeFlightDuration: float = 3.0     # Seconds
    moveAmount: float = 1000.0          # Meters per key press
    twistAmount: float = 1.0            # Degrees per key press


class ViewerLifecycle:

    def __init__(self, hostFactory: Callable[[], RenderHost], options: Optional[ViewerOptions] = None):
        self.hostFactory = hostFactory
        self.options = options or ViewerOptions()
        self.log = getLogger()
        self.host: Optional[RenderHost] = None
        self.consumers: List[SceneConsumer] = []
        self.generation = 0

    @property
    def isReady(self) -> bool:
        return self.host is not None and not self.host.destroyed

    def register(self, consumer: SceneConsumer) -> None:
        """Add a consumer. A consumer registered after start is attached immediately"""
        if consumer in self.consumers:
            return
        self.consumers.append(consumer)
        if self.isReady:
            consumer.attach(self.host)

    def unregister(self, consumer: SceneConsumer) -> None:
        if consumer not in self.consumers:
            return
        self.consumers.remove(consumer)
        consumer.releaseInput()
        consumer.detach()

    def start(self) -> RenderHost:
        if self.isReady:
            return self.host

        host = self.hostFactory()
        host.setView(self.options.homeView)
        self.host = host
        self.generation += 1
        self.log.info("Render host ready", generation=self.generation, consumers=len(self.consumers))

        for consumer in self.consumers:
            consumer.attach(host)
        return host

    def stop(self) -> None:
        host, self.host = self.host, None
        if host is None:
            return

        for consumer in self.consumers:
            consumer.releaseInput()
        for consumer in self.consumers:
            consumer.detach()
        host.destroy()
        self.log.info("Render host torn down", generation=self.generation)

    def replaceHost(self) -> RenderHost:
        self.stop()
        return self.start()

    def flyHome(self) -> bool:
        if not self.isReady:
            return False
        self.host.flyTo(self.options.homeView, self.options.homeFlightDuration)
        return True

    def handleKey(self, key: str) -> bool:
        """Apply a keyboard navigation key. Returns False for unbound keys or when no host is ready"""
        binding = KEY_BINDINGS.get(key)
        if binding is None or not self.isReady:
            return False

        operation, argument = binding
        if operation == 'move':
            self.host.moveCamera(argument, self.options.moveAmount)
        else:
            self.host.twistCamera(argument * self.options.twistAmount)
        return True
