from pathlib import Path
import pytest


class DataPath(object):
    def __init__(self, datadir_obj):
        self.datadir_obj = datadir_obj

    def __getitem__(self, path):
        return Path(self.datadir_obj / path)


@pytest.fixture
def datapath(datadir):
    return DataPath(datadir)
