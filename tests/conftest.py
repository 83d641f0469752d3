import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.pool import NullPool

from canteen.config import Settings
from canteen.container import build_services
from canteen.database import build_engine, create_tables
from canteen.main import create_app
from canteen.models import Canteen, MenuItem, User, UserRole
from canteen.payments.gateway import PaymentGateway
from helpers import SERVER_KEY, FakeGateway, RecordingPublisher, World, identity_of


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'canteen.db'}",
        midtrans_server_key=SERVER_KEY,
        midtrans_client_key="SB-Mid-client-test-key",
        kafka_bootstrap_servers="",
        otlp_endpoint="",
    )


@pytest.fixture
def gateway() -> PaymentGateway:
    return FakeGateway()


@pytest.fixture
def publisher() -> RecordingPublisher:
    return RecordingPublisher()


@pytest.fixture
async def services(settings, gateway, publisher):
    engine = build_engine(settings.database_url, poolclass=NullPool)
    await create_tables(engine)
    services = build_services(settings, engine=engine, gateway=gateway, publisher=publisher)
    yield services
    await engine.dispose()


@pytest.fixture
async def client(settings, services):
    app = create_app(settings, services)
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        yield c


@pytest.fixture
async def world(services) -> World:
    customer = User(email="budi@campus.ac.id", name="Budi", phone="08123456789", role=UserRole.USER)
    other_customer = User(email="sari@campus.ac.id", name="Sari", phone=None, role=UserRole.USER)
    owner = User(email="owner@kantin.id", name="Bu Tini", phone=None, role=UserRole.CANTEEN_OWNER)
    other_owner = User(email="owner2@kantin.id", name="Pak Joko", phone=None, role=UserRole.CANTEEN_OWNER)

    async with services.sessionmaker() as db:
        async with db.begin():
            db.add_all([customer, other_customer, owner, other_owner])
            await db.flush()

            canteen = Canteen(name="Kantin Teknik", owner_id=owner.id)
            other_canteen = Canteen(name="Kantin Sastra", owner_id=other_owner.id)
            db.add_all([canteen, other_canteen])
            await db.flush()

            nasi_goreng = MenuItem(canteen_id=canteen.id, name="Nasi Goreng", price=15000, stock=5)
            es_teh = MenuItem(canteen_id=canteen.id, name="Es Teh", price=5000, stock=10)
            bakso = MenuItem(canteen_id=other_canteen.id, name="Bakso", price=12000, stock=3)
            removed = MenuItem(canteen_id=canteen.id, name="Soto", price=10000, stock=4)
            db.add_all([nasi_goreng, es_teh, bakso, removed])
            await db.flush()
            removed.deleted_at = removed.created_at

    return World(
        customer=identity_of(customer),
        other_customer=identity_of(other_customer),
        owner=identity_of(owner),
        other_owner=identity_of(other_owner),
        canteen_id=canteen.id,
        other_canteen_id=other_canteen.id,
        nasi_goreng=nasi_goreng.id,
        es_teh=es_teh.id,
        bakso=bakso.id,
        removed_item=removed.id,
    )
