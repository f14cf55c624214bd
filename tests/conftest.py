from pytest_socket import disable_socket

def pytest_runtest_setup():
    """
    Runs before every test.
    The Kwollect API is only ever reached through httpx.MockTransport and
    LaMetric pushes are mocked, so real network access is disabled: any
    connection attempt raises SocketBlockedError.
    """
    disable_socket(allow_unix_socket=True)
