from unittest.mock import Mock

import httpx
import pytest
import respx

from chainloader.delegator import Delegator
from chainloader.errors import (
    EntrypointNotFound,
    ExtractionLayoutError,
    FetchFailed,
    UnsupportedOrigin,
    WorkdirError,
)
from chainloader.source import RemoteSource

ORIGIN = "https://github.com/acme/tools.git"
ARCHIVE_URL = "https://codeload.github.com/acme/tools/tar.gz/v2"


def make_source(workdir, **overrides):
    values = {"origin": ORIGIN, "ref": "v2", "workdir": workdir, "entrypoint": "run.sh"}
    values.update(overrides)
    return RemoteSource(**values)


@pytest.fixture
def serve():
    """Serve ``content`` at the archive URL for the duration of a test."""
    with respx.mock(assert_all_called=False) as respx_mock:

        def _serve(content=b"", status=httpx.codes.OK):
            return respx_mock.get(ARCHIVE_URL).mock(
                return_value=httpx.Response(status, content=content)
            )

        yield _serve


class TestRun:
    def test_forwards_arguments_verbatim(self, serve, tarball, workdir, tmp_path):
        out = tmp_path / "argv.txt"
        script = f'#!/bin/sh\nfor arg in "$@"; do printf "%s\\n" "$arg"; done > "{out}"\n'
        serve(tarball({"tools-2/run.sh": script}))

        code = Delegator().run(make_source(workdir, args=("--foo", "bar", "baz qux")))

        assert code == 0
        assert out.read_text().splitlines() == ["--foo", "bar", "baz qux"]

    def test_entrypoint_runs_from_repository_root(self, serve, tarball, workdir, tmp_path):
        out = tmp_path / "cwd.txt"
        serve(tarball({"tools-2/scripts/run.sh": f'#!/bin/sh\npwd > "{out}"\n'}))

        Delegator().run(make_source(workdir, entrypoint="scripts/run.sh"))

        assert out.read_text().strip().endswith("repo/tools-2")

    def test_exit_status_is_propagated(self, serve, tarball, workdir):
        serve(tarball({"tools-2/run.sh": "#!/bin/sh\nexit 7\n"}))

        assert Delegator().run(make_source(workdir)) == 7  # noqa: PLR2004

    def test_signal_death_maps_to_shell_status(self, serve, tarball, workdir):
        serve(tarball({"tools-2/run.sh": "#!/bin/sh\nkill -TERM $$\n"}))

        assert Delegator().run(make_source(workdir)) == 143  # noqa: PLR2004

    def test_missing_exec_bit_is_added(self, serve, tarball, workdir):
        serve(tarball({"tools-2/run.sh": "#!/bin/sh\nexit 0\n"}, executable=False))

        assert Delegator().run(make_source(workdir)) == 0

    def test_interpreter_prefixes_command(self, serve, tarball, workdir):
        serve(tarball({"tools-2/run.sh": "echo hi\n"}))
        executor = Mock(return_value=0)

        Delegator(executor=executor).run(
            make_source(workdir, interpreter="bash -e", args=("x",))
        )

        command, cwd = executor.call_args[0]
        assert command[:2] == ["bash", "-e"]
        assert command[2].endswith("tools-2/run.sh")
        assert command[3:] == ["x"]
        assert cwd.name == "tools-2"

    def test_shell_scripts_default_to_bash(self, serve, tarball, workdir):
        serve(tarball({"tools-2/run.sh": "echo hi\n"}))
        executor = Mock(return_value=0)

        Delegator(executor=executor).run(make_source(workdir))

        command = executor.call_args[0][0]
        assert command[0] == "bash"
        assert command[1].endswith("tools-2/run.sh")

    @pytest.mark.parametrize(
        ("entrypoint", "interpreter"), [("bin/setup", None), ("run.sh", "")]
    )
    def test_direct_exec(self, entrypoint, interpreter, serve, tarball, workdir):
        serve(tarball({f"tools-2/{entrypoint}": "#!/bin/sh\n"}))
        executor = Mock(return_value=0)

        Delegator(executor=executor).run(
            make_source(workdir, entrypoint=entrypoint, interpreter=interpreter)
        )

        command = executor.call_args[0][0]
        assert command[0].endswith(f"tools-2/{entrypoint}")

    def test_script_without_shebang_runs(self, serve, tarball, workdir, tmp_path):
        out = tmp_path / "ran.txt"
        serve(tarball({"tools-2/run.sh": f'echo ok > "{out}"\n'}))

        assert Delegator().run(make_source(workdir)) == 0
        assert out.read_text().strip() == "ok"

    def test_stale_extraction_is_replaced(self, serve, tarball, workdir):
        stale = workdir / "repo" / "old-top"
        stale.mkdir(parents=True)
        serve(tarball({"tools-2/run.sh": "#!/bin/sh\nexit 0\n"}))

        assert Delegator().run(make_source(workdir)) == 0
        assert not stale.exists()
        assert not (workdir / "repo.tgz").exists()


class TestFetch:
    def test_token_sent_as_authorization_header(self, serve, tarball, workdir):
        route = serve(tarball({"tools-2/run.sh": "#!/bin/sh\n"}))

        Delegator(executor=Mock(return_value=0)).run(make_source(workdir, token="abc123"))

        assert route.calls.last.request.headers["Authorization"] == "token abc123"

    def test_no_token_no_authorization_header(self, serve, tarball, workdir):
        route = serve(tarball({"tools-2/run.sh": "#!/bin/sh\n"}))

        Delegator(executor=Mock(return_value=0)).run(make_source(workdir))

        assert "Authorization" not in route.calls.last.request.headers

    def test_http_error_is_fetch_failure(self, serve, workdir):
        serve(status=httpx.codes.NOT_FOUND)
        executor = Mock()

        with pytest.raises(FetchFailed, match="HTTP 404") as exc_info:
            Delegator(executor=executor).run(make_source(workdir))

        assert "GIT_TOKEN" in exc_info.value.hint
        assert not (workdir / "repo.tgz").exists()
        executor.assert_not_called()

    def test_transport_error_is_fetch_failure(self, workdir):
        with respx.mock() as respx_mock:
            respx_mock.get(ARCHIVE_URL).mock(side_effect=httpx.ConnectError("no route"))

            with pytest.raises(FetchFailed, match="no route"):
                Delegator(executor=Mock()).run(make_source(workdir))

    def test_unsupported_origin_makes_no_request(self, workdir):
        executor = Mock()
        with respx.mock(assert_all_called=False) as respx_mock:
            route = respx_mock.route()

            with pytest.raises(UnsupportedOrigin):
                Delegator(executor=executor).run(
                    make_source(workdir, origin="https://gitlab.com/acme/tools.git")
                )

        assert route.call_count == 0
        assert not workdir.exists()
        executor.assert_not_called()


class TestLayout:
    def test_two_top_level_directories(self, serve, tarball, workdir):
        serve(tarball({"a/run.sh": "#!/bin/sh\n", "b/run.sh": "#!/bin/sh\n"}))
        executor = Mock()

        with pytest.raises(ExtractionLayoutError, match="exactly one top-level directory"):
            Delegator(executor=executor).run(make_source(workdir))

        executor.assert_not_called()

    def test_top_level_file_only(self, serve, tarball, workdir):
        serve(tarball({"run.sh": "#!/bin/sh\n"}))

        with pytest.raises(ExtractionLayoutError):
            Delegator(executor=Mock()).run(make_source(workdir))

    def test_corrupt_archive(self, serve, workdir):
        serve(b"definitely not gzip")

        with pytest.raises(ExtractionLayoutError, match="Could not extract"):
            Delegator(executor=Mock()).run(make_source(workdir))

    def test_missing_entrypoint(self, serve, tarball, workdir):
        serve(tarball({"tools-2/other.sh": "#!/bin/sh\n"}))
        executor = Mock()

        with pytest.raises(EntrypointNotFound, match="run.sh"):
            Delegator(executor=executor).run(make_source(workdir))

        executor.assert_not_called()

    def test_entrypoint_cannot_escape_repository(self, serve, tarball, workdir):
        serve(tarball({"tools-2/run.sh": "#!/bin/sh\n"}))
        (workdir / "outside.sh").parent.mkdir(parents=True)
        (workdir / "outside.sh").write_text("#!/bin/sh\n")

        with pytest.raises(EntrypointNotFound):
            Delegator(executor=Mock()).run(make_source(workdir, entrypoint="../../outside.sh"))

    def test_member_outside_destination_is_rejected(self, serve, tarball, workdir):
        serve(tarball({"../evil.sh": "#!/bin/sh\n"}))

        with pytest.raises(ExtractionLayoutError):
            Delegator(executor=Mock()).run(make_source(workdir))

        assert not (workdir / "evil.sh").exists()


class TestWorkdir:
    def test_workdir_below_a_regular_file(self, tmp_path):
        blocker = tmp_path / "blocker"
        blocker.write_text("")
        executor = Mock()
        with respx.mock(assert_all_called=False) as respx_mock:
            route = respx_mock.route()

            with pytest.raises(WorkdirError, match="Cannot prepare workdir") as exc_info:
                Delegator(executor=executor).run(make_source(blocker / "sub"))

        assert "--workdir" in exc_info.value.hint
        assert route.call_count == 0
        executor.assert_not_called()

    def test_unwritable_archive_path(self, serve, tarball, workdir):
        serve(tarball({"tools-2/run.sh": "#!/bin/sh\n"}))
        (workdir / "repo.tgz").mkdir(parents=True)
        executor = Mock()

        with pytest.raises(WorkdirError, match="Cannot write archive"):
            Delegator(executor=executor).run(make_source(workdir))

        executor.assert_not_called()
