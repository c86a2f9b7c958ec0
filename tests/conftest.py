import pytest

from config import TestingSettings
from logging_config import configure_logging
from models import Command
from repositories import InMemoryBalanceRepository, InMemoryTransactionHistoryRepository
from services import CommandProcessor

configure_logging(TestingSettings())


def make_command(kind, client, tx, amount=None):
    return Command.model_validate({"type": kind, "client": client, "tx": tx, "amount": amount})


@pytest.fixture
def balance_repo():
    return InMemoryBalanceRepository()


@pytest.fixture
def history_repo():
    return InMemoryTransactionHistoryRepository()


@pytest.fixture
def processor(balance_repo, history_repo):
    return CommandProcessor(balance_repo, history_repo)
