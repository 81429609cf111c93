"""
Remote adapter tests: error translation and query rendering.
"""

import asyncio
import time

import pytest
from postgrest.exceptions import APIError

from models.errors import Conflict, ErrorKind, NotFound, TransportError, Unauthenticated
from services.remote_service import Query, SupabaseRemote, translate_error


class RecordingBuilder:
    """Chainable stand-in for a PostgREST request builder."""

    def __init__(self, result=None, error=None):
        self.calls = []
        self.result = result
        self.error = error

    def __getattr__(self, name):
        def method(*args, **kwargs):
            self.calls.append((name, args, kwargs))
            return self
        return method

    def execute(self):
        if self.error is not None:
            raise self.error
        return self.result


class FakeClient:

    def __init__(self, builder):
        self.builder = builder

    def table(self, name):
        return self.builder

    def rpc(self, function, params):
        return self.builder


class TestTranslateError:

    def test_no_rows(self):
        err = translate_error(APIError({"code": "PGRST116", "message": "JSON object requested, multiple (or no) rows returned"}))

        assert isinstance(err, NotFound)
        assert err.kind == ErrorKind.NOT_FOUND

    def test_unique_violation_names_constraint(self):
        err = translate_error(APIError({
            "code": "23505",
            "message": 'duplicate key value violates unique constraint "unique_patient_non_path_history"',
        }))

        assert isinstance(err, Conflict)
        assert err.constraint == "unique_patient_non_path_history"
        assert err.violates("unique_patient_non_path_history")

    def test_expired_token(self):
        assert isinstance(translate_error(APIError({"code": "PGRST301", "message": "JWT expired"})), Unauthenticated)

    def test_everything_else_is_transport(self):
        err = translate_error(APIError({"code": "42501", "message": "permission denied for table tcUsuarios"}))

        assert isinstance(err, TransportError)
        assert err.code == "42501"

    def test_timeout_is_transport(self):
        assert isinstance(translate_error(asyncio.TimeoutError()), TransportError)


class TestQueryApply:

    def test_renders_filters_ordering_and_range(self):
        builder = RecordingBuilder()
        query = Query().eq("idbu", "bu-1").is_("deleted_at", "null").order("fecha_cita").range(20, 29)

        query.apply(builder)

        names = [name for name, _, _ in builder.calls]
        assert names == ["eq", "is_", "order", "range"]
        assert builder.calls[-1][1] == (20, 29)

    def test_single_row_limits_to_one(self):
        builder = RecordingBuilder()

        Query().eq("id", 1).first().apply(builder)

        assert builder.calls[-1] == ("limit", (1,), {})


class TestSupabaseRemote:

    @pytest.mark.asyncio
    async def test_single_read_returns_row(self):
        builder = RecordingBuilder(result=type("Res", (), {"data": [{"id": 1}]})())
        remote = SupabaseRemote(FakeClient(builder))

        assert await remote.read("tcPacientes", Query().eq("id", 1).first()) == {"id": 1}

    @pytest.mark.asyncio
    async def test_no_rows_error_reads_as_empty(self):
        builder = RecordingBuilder(error=APIError({"code": "PGRST116", "message": "no rows"}))
        remote = SupabaseRemote(FakeClient(builder))

        assert await remote.read("tcPacientes", Query().first()) is None
        assert await remote.read("tcPacientes", Query()) == []

    @pytest.mark.asyncio
    async def test_insert_conflict_is_translated(self):
        builder = RecordingBuilder(error=APIError({
            "code": "23505",
            "message": 'duplicate key value violates unique constraint "unique_patient_non_path_history"',
        }))
        remote = SupabaseRemote(FakeClient(builder))

        with pytest.raises(Conflict):
            await remote.insert("tpPacienteHistNoPatol", {"patient_id": "p1"})

    @pytest.mark.asyncio
    async def test_slow_call_times_out(self):
        remote = SupabaseRemote(FakeClient(RecordingBuilder()), timeout_sec=0.05)

        with pytest.raises(TransportError):
            await remote._execute("read tcPacientes", lambda: time.sleep(0.5))
