import pytest

from mds.log import LogLevel, Logger, PanicError


@pytest.fixture
def captured():
    lines = []
    return lines, (lambda level, text: lines.append((level, text)))


def test_levels_match_source(captured):
    lines, sink = captured
    logger = Logger("", LogLevel(3), sink)
    assert logger.error("e") == "e\n"
    assert logger.warn("w") is None
    assert lines == [(LogLevel.ERROR, "e\n")]
    assert int(LogLevel.OFF) == 0
    assert int(LogLevel.ALL) == 7


def test_message_has_tag_and_newline(captured):
    lines, sink = captured
    logger = Logger("[t]", LogLevel.ALL, sink)
    text = logger.info("value %d of %s", 3, "x")
    assert text == "[t]value 3 of x\n"
    assert lines == [(LogLevel.INFO, "[t]value 3 of x\n")]


def test_no_args_leaves_percent_alone(captured):
    lines, sink = captured
    logger = Logger("", LogLevel.ALL, sink)
    assert logger.error("100%") == "100%\n"


def test_build_level_cuts_off_lower_priority(captured):
    lines, sink = captured
    logger = Logger("", LogLevel.WARN, sink)
    assert logger.debug("hidden") is None
    assert logger.info("hidden") is None
    assert logger.warn("shown") == "shown\n"
    assert logger.fatal("shown") == "shown\n"
    assert [level for level, _ in lines] == [LogLevel.WARN, LogLevel.FATAL]


def test_off_build_level_emits_nothing(captured):
    lines, sink = captured
    logger = Logger("", LogLevel.OFF, sink)
    assert logger.through("x") is None
    assert logger.fatal("x") is None
    assert lines == []


def test_each_helper_uses_its_level(captured):
    lines, sink = captured
    logger = Logger("", LogLevel.ALL, sink)
    results = [
        logger.through("a"),
        logger.fatal("a"),
        logger.error("a"),
        logger.warn("a"),
        logger.info("a"),
        logger.debug("a"),
    ]
    assert results == ["a\n"] * 6
    assert [level for level, _ in lines] == [
        LogLevel.THROUGH,
        LogLevel.FATAL,
        LogLevel.ERROR,
        LogLevel.WARN,
        LogLevel.INFO,
        LogLevel.DEBUG,
    ]


def test_too_many_arguments_rejected(captured):
    _, sink = captured
    logger = Logger("", LogLevel.ALL, sink)
    with pytest.raises(ValueError):
        logger.info("%d" * 17, *range(17))


def test_panic_raises_with_prefix(captured):
    lines, sink = captured
    logger = Logger("[tag]", LogLevel.OFF, sink)
    with pytest.raises(PanicError) as info:
        logger.panic("boom %d", 7)
    assert str(info.value) == "[PANIC]boom 7\n"
    assert lines == [(LogLevel.FATAL, "[PANIC]boom 7\n")]