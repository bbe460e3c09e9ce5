import pytest

from penduhub import signaling
from penduhub.models import PenduUpdate, Player
from penduhub.session import PeerSession
from penduhub.store import SessionStore
from penduhub.transport import Channel, LoopbackNetwork


class RecordingChannel(Channel):
    """Open channel that keeps whatever is sent through it."""

    def __init__(self, peer):
        super().__init__(peer, inbound=True)
        self.open = True
        self.sent = []

    def send(self, message):
        self.sent.append(message)

    def close(self):
        self.open = False


@pytest.fixture()
def make_session():
    """Build a session wired to recording channels instead of a live transport."""

    def factory(my_id, host_id="", peers=()):
        store = SessionStore()
        store.set_my_id(my_id)
        store.update_pendu(PenduUpdate(host_id=host_id, mode="versus" if peers else "solo"))
        session = PeerSession(store, LoopbackNetwork().transport)
        for peer in peers:
            session.connections[peer] = RecordingChannel(peer)
            store.add_player(Player(id=peer, name=peer))
        return session

    return factory


@pytest.fixture()
def broker():
    signaling.PEERS.clear()
    signaling.CHANNELS.clear()
    yield signaling
    signaling.PEERS.clear()
    signaling.CHANNELS.clear()
