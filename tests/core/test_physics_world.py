"""Tests for the reference point-mass physics world."""

import numpy as np
import pytest

from climbrl.physics import BodyKind, PhysicsBackend, PointMassWorld

DT = 1.0 / 60.0


def _world_with_ground(**kwargs):
    world = PointMassWorld(**kwargs)
    ground = world.create_body(BodyKind.STATIC, (0.0, -0.5, 0.0), 0.0, size=(10.0, 1.0, 10.0), tag="ground")
    return world, ground


@pytest.mark.unit
class TestPointMassWorld:
    def test_satisfies_backend_protocol(self):
        assert isinstance(PointMassWorld(), PhysicsBackend)

    def test_free_fall(self):
        world = PointMassWorld(gravity=-10.0, linear_damping=0.0)
        body = world.create_body(BodyKind.DYNAMIC, (0.0, 5.0, 0.0), 1.0, size=(0.5, 0.5, 0.5))
        world.step(0.1)
        np.testing.assert_allclose(world.get_velocity(body), [0.0, -1.0, 0.0])
        np.testing.assert_allclose(world.get_position(body), [0.0, 4.9, 0.0])

    def test_body_comes_to_rest_on_ground(self):
        world, ground = _world_with_ground()
        body = world.create_body(BodyKind.DYNAMIC, (0.0, 0.5, 0.0), 1.0, size=(0.5, 0.5, 0.5), tag="agent")
        for _ in range(60):
            world.step(DT)
        assert world.get_position(body)[1] == pytest.approx(0.25, abs=1e-6)
        assert world.get_velocity(body)[1] == pytest.approx(0.0)
        assert ground in world.get_colliding_bodies(body)
        assert body in world.get_colliding_bodies(ground)

    def test_wall_blocks_horizontal_motion(self):
        world, _ = _world_with_ground(linear_damping=0.0)
        world.create_body(BodyKind.STATIC, (0.0, 1.0, -2.0), 0.0, size=(4.0, 2.0, 1.0), tag="wall")
        body = world.create_body(BodyKind.DYNAMIC, (0.0, 0.25, 0.0), 1.0, size=(0.5, 0.5, 0.5))
        world.set_velocity(body, (0.0, 0.0, -5.0))
        for _ in range(60):
            world.step(DT)
        # Wall face at z=-1.5; agent half extent 0.25.
        assert world.get_position(body)[2] >= -1.25 - 1e-6

    def test_impulse_scales_with_inverse_mass(self):
        world = PointMassWorld()
        body = world.create_body(BodyKind.DYNAMIC, (0.0, 0.0, 0.0), 2.0)
        world.apply_impulse(body, (0.0, 4.0, 0.0))
        np.testing.assert_allclose(world.get_velocity(body), [0.0, 2.0, 0.0])

    def test_forces_are_cleared_after_step(self):
        world = PointMassWorld(gravity=0.0, linear_damping=0.0)
        body = world.create_body(BodyKind.DYNAMIC, (0.0, 0.0, 0.0), 1.0)
        world.apply_force(body, (10.0, 0.0, 0.0))
        world.step(0.1)
        world.step(0.1)
        np.testing.assert_allclose(world.get_velocity(body), [1.0, 0.0, 0.0])

    def test_static_bodies_ignore_forces(self):
        world, ground = _world_with_ground()
        world.apply_force(ground, (100.0, 0.0, 0.0))
        world.apply_impulse(ground, (100.0, 0.0, 0.0))
        world.step(DT)
        np.testing.assert_allclose(world.get_position(ground), [0.0, -0.5, 0.0])

    def test_friction_slows_supported_body(self):
        world, _ = _world_with_ground(linear_damping=0.0, friction=2.0)
        body = world.create_body(BodyKind.DYNAMIC, (0.0, 0.25, 0.0), 1.0, size=(0.5, 0.5, 0.5))
        world.set_velocity(body, (1.0, 0.0, 0.0))
        world.step(0.1)
        assert world.get_velocity(body)[0] == pytest.approx(0.8)

    def test_tags(self):
        world, ground = _world_with_ground()
        assert world.find_body("ground") == ground
        assert world.body_tag(ground) == "ground"
        assert world.find_body("missing") is None
        with pytest.raises(ValueError):
            world.create_body(BodyKind.STATIC, (0.0, 0.0, 0.0), 0.0, tag="ground")

    def test_remove_body(self):
        world, ground = _world_with_ground()
        world.remove_body(ground)
        assert len(world) == 0
        assert world.find_body("ground") is None
        with pytest.raises(KeyError):
            world.get_position(ground)

    def test_invalid_arguments(self):
        world = PointMassWorld()
        with pytest.raises(ValueError):
            world.create_body(BodyKind.DYNAMIC, (0.0, 0.0, 0.0), 0.0)
        with pytest.raises(ValueError):
            world.create_body(BodyKind.STATIC, (0.0, 0.0, 0.0), 0.0, size=(1.0, 0.0, 1.0))
        with pytest.raises(ValueError):
            world.create_body(BodyKind.STATIC, (0.0, 0.0), 0.0)
        with pytest.raises(ValueError):
            world.step(0.0)
