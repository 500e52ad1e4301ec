"""Tests for library/context lifecycle and handle arenas."""

import numpy as np
import pytest

from sem_mc.core.materials import get_material
from sem_mc.core.sample import HomogeneousSample
from sem_mc.errors import (InvalidParameterError, NotInitializedError, PhysicsError,
                           SimulationCancelled)
from sem_mc.simulation.arena import Handle, HandleArena
from sem_mc.simulation.context import ContextState, Library
from sem_mc.transport.engine import TrajectoryState


@pytest.fixture
def library():
    with Library() as lib:
        yield lib


@pytest.fixture
def context(library):
    return library.create_context(seed=3)


class TestHandleArena:

    def test_insert_get_remove(self):
        arena = HandleArena('thing')
        h = arena.insert('a')
        assert arena.get(h) == 'a'
        assert arena.remove(h) == 'a'
        with pytest.raises(InvalidParameterError, match="Stale"):
            arena.get(h)

    def test_slot_reuse_bumps_generation(self):
        arena = HandleArena('thing')
        old = arena.insert('a')
        arena.remove(old)
        new = arena.insert('b')
        assert new.index == old.index
        assert new.generation == old.generation + 1
        assert not arena.contains(old)
        assert arena.get(new) == 'b'

    def test_foreign_handle(self):
        arena = HandleArena('sample')
        arena.insert('a')
        with pytest.raises(InvalidParameterError):
            arena.get(Handle('context', 0, 0))
        with pytest.raises(InvalidParameterError):
            arena.get((0, 0))

    def test_len_and_clear(self):
        arena = HandleArena('thing')
        for item in 'abc':
            arena.insert(item)
        assert len(arena) == 3
        arena.clear()
        assert len(arena) == 0


class TestLibrary:

    def test_initialize_once(self):
        lib = Library().initialize()
        with pytest.raises(NotInitializedError):
            lib.initialize()
        lib.finalize()
        with pytest.raises(NotInitializedError):
            lib.finalize()

    def test_context_requires_active_library(self):
        lib = Library()
        with pytest.raises(NotInitializedError):
            lib.create_context()
        lib.initialize()
        lib.finalize()
        with pytest.raises(NotInitializedError):
            lib.create_context()

    def test_finalize_destroys_contexts(self):
        lib = Library().initialize()
        ctx = lib.create_context()
        lib.finalize()
        assert ctx.state == ContextState.DESTROYED


class TestSamples:

    def test_create_and_destroy(self, context):
        h = context.create_homogeneous_sample('Cu', 100, 100, 100)
        assert context.get_sample(h).material is get_material('Cu')
        context.destroy_sample(h)
        with pytest.raises(InvalidParameterError):
            context.get_sample(h)

    def test_layered(self, context):
        h = context.create_layered_sample([('C', 10.0), (get_material('Si'), 100.0)],
                                          100, 100)
        assert context.get_sample(h).material_at(0, 0, 5).name == 'C'

    def test_invalid_layers(self, context):
        with pytest.raises(InvalidParameterError):
            context.create_layered_sample([('C', -10.0)], 100, 100)
        with pytest.raises(InvalidParameterError):
            context.create_layered_sample([('Unobtainium', 10.0)], 100, 100)
        assert len(context.samples) == 0


class TestRuns:

    def test_run_returns_to_configured(self, context, param_factory):
        h = context.create_homogeneous_sample('C', 2000, 2000, 2000)
        with context.run(h, param_factory(width=1, height=2)) as results:
            assert results.image.shape == (2, 1)
        assert context.state == ContextState.CONFIGURED

    def test_reentrant_run_is_busy(self, context, param_factory):
        h = context.create_homogeneous_sample('C', 2000, 2000, 2000)
        params = param_factory(width=1, height=2)
        errors = []

        def nested(fraction):
            assert context.state == ContextState.RUNNING
            for attempt in (lambda: context.run(h, params), context.destroy,
                            lambda: context.destroy_sample(h)):
                try:
                    attempt()
                except NotInitializedError as e:
                    errors.append(e)

        context.set_progress_sink(nested)
        context.run(h, params).release()
        assert len(errors) == 6
        assert context.state == ContextState.CONFIGURED

    def test_cancel(self, context, param_factory):
        h = context.create_homogeneous_sample('C', 2000, 2000, 2000)
        params = param_factory(width=1, height=3)
        context.set_progress_sink(lambda fraction: context.cancel())
        with pytest.raises(SimulationCancelled):
            context.run(h, params)
        assert context.state == ContextState.CONFIGURED

        context.set_progress_sink(None)
        with context.run(h, params) as results:
            assert results.image.shape == (3, 1)

    def test_running_while_scan_is_prepared(self, context, param_factory):
        seen = {}

        class HookedSample(HomogeneousSample):
            @property
            def surface_material(self):
                if not seen:
                    seen['state'] = context.state
                    with pytest.raises(NotInitializedError):
                        context.destroy()
                    context.cancel()
                return super().surface_material

        sample = HookedSample(get_material('C'), 2000, 2000, 2000)
        with pytest.raises(SimulationCancelled):
            context.run(sample, param_factory(width=1, height=2))
        assert seen['state'] == ContextState.RUNNING
        assert context.state == ContextState.CONFIGURED
        assert not context.cancel_token.cancelled

    def test_progress_restarts_each_run(self, context, param_factory):
        h = context.create_homogeneous_sample('C', 2000, 2000, 2000)
        params = param_factory(width=1, height=4)
        seen = []
        context.set_progress_sink(seen.append)
        for _ in range(2):
            seen.clear()
            context.run(h, params).release()
            assert seen == [0.25, 0.5, 0.75, 1.0]

    def test_stale_sample_handle(self, context, param_factory):
        h = context.create_homogeneous_sample('C', 2000, 2000, 2000)
        context.destroy_sample(h)
        with pytest.raises(InvalidParameterError):
            context.run(h, param_factory())

    def test_destroyed_context(self, context, param_factory):
        h = context.create_homogeneous_sample('C', 2000, 2000, 2000)
        context.destroy()
        with pytest.raises(NotInitializedError):
            context.run(h, param_factory())
        with pytest.raises(NotInitializedError):
            context.create_homogeneous_sample('C', 10, 10, 10)

    def test_recreated_context_reproduces(self, library, param_factory):
        params = param_factory(width=2, height=1)
        signals = []
        for _ in range(2):
            with library.create_context() as ctx:
                h = ctx.create_homogeneous_sample('C', 2000, 2000, 2000)
                with ctx.run(h, params) as results:
                    signals.append(results.image.signal.copy())
        assert np.array_equal(signals[0], signals[1])


class TestSimulateElectron:

    def test_single_trajectory(self, context, param_factory):
        h = context.create_homogeneous_sample('Cu', 5000, 5000, 5000)
        result = context.simulate_electron(h, param_factory(), 5.0, (0, 0, 0), (0, 0, 1))
        assert result.state != TrajectoryState.TRAVELING
        assert result.max_depth > 0.0

    def test_uses_context_rng(self, library, param_factory):
        results = []
        for _ in range(2):
            ctx = library.create_context(seed=9)
            h = ctx.create_homogeneous_sample('Cu', 5000, 5000, 5000)
            results.append(ctx.simulate_electron(h, param_factory(), 5.0,
                                                 (0, 0, 0), (0, 0, 1)))
        assert results[0].position == results[1].position

    def test_non_unit_direction(self, context, param_factory):
        h = context.create_homogeneous_sample('Cu', 5000, 5000, 5000)
        with pytest.raises(PhysicsError):
            context.simulate_electron(h, param_factory(), 5.0, (0, 0, 0), (0, 1, 1))
