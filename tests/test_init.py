import pytest


def test_lazy_imports_and_caching():
    import gitscribe  # triggers gitscribe.__getattr__

    # First access loads and caches
    Session1 = gitscribe.GenerationSession
    from gitscribe.orchestrator import GenerationSession as RealSession

    assert Session1 is RealSession
    # Second access should use cached value
    assert gitscribe.GenerationSession is RealSession
    assert gitscribe.ProviderTimeout.__module__ == "gitscribe.exceptions"


def test_unknown_attribute_raises():
    import gitscribe

    with pytest.raises(AttributeError):
        getattr(gitscribe, "TotallyUnknownSymbol")
