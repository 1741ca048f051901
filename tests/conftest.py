import pytest

from graph_memory import InMemoryGraphRepository
from models import Document


@pytest.fixture
def corpus():
    return [
        Document(id="a", title="cat video", description="a cat plays"),
        Document(id="b", title="dog video", description="a dog plays"),
        Document(id="c", title="cat and dog", description="cat plays with dog"),
    ]


@pytest.fixture
def repo():
    repo = InMemoryGraphRepository()
    for vid, title in (("a", "Cat video"), ("b", "Dog video"), ("c", "Cat and dog")):
        repo.add_video(vid, title=title)
    repo.users.add("u1")
    repo.watches[("u1", "a")] = 1.0
    repo.set_similarity("a", "b", 0.1)
    repo.set_similarity("a", "c", 0.8)
    return repo
