"""Pytest configuration and shared fixtures."""
from collections import deque
from pathlib import Path

import numpy as np
import pytest

from climbrl.envs.actions import N_ACTIONS
from climbrl.envs.climbing_env import STATE_DIM, ClimbingEnvironment
from climbrl.physics.backend import BodyKind, as_vector

PROJECT_ROOT = Path(__file__).parent.parent


class ScriptedPhysics:
    """Physics double that teleports the agent along a queued script.

    Each ``step`` pops the next ``(position, velocity)`` pair; an empty script
    leaves the agent where it is. Forces and impulses are recorded, not applied.
    """

    def __init__(self):
        self.bodies = {}
        self.tags = {}
        self.script = deque()
        self.contacts = []
        self.forces = []
        self.impulses = []
        self.steps = 0
        self._agent = None

    def create_body(self, kind, position, mass, shape, size, tag=None):
        handle = len(self.bodies)
        self.bodies[handle] = {
            "kind": BodyKind(kind),
            "position": as_vector(position).copy(),
            "velocity": np.zeros(3),
            "size": as_vector(size),
            "tag": tag,
        }
        if tag is not None:
            self.tags[tag] = handle
        if BodyKind(kind) is BodyKind.DYNAMIC:
            self._agent = handle
        return handle

    def queue(self, position, velocity=(0.0, 0.0, 0.0)):
        self.script.append((as_vector(position), as_vector(velocity)))

    def get_position(self, handle):
        return self.bodies[handle]["position"].copy()

    def get_velocity(self, handle):
        return self.bodies[handle]["velocity"].copy()

    def set_position(self, handle, position):
        self.bodies[handle]["position"] = as_vector(position).copy()

    def set_velocity(self, handle, velocity):
        self.bodies[handle]["velocity"] = as_vector(velocity).copy()

    def apply_force(self, handle, force):
        self.forces.append(as_vector(force))

    def apply_impulse(self, handle, impulse):
        self.impulses.append(as_vector(impulse))

    def step(self, dt):
        self.steps += 1
        if self.script:
            position, velocity = self.script.popleft()
            self.set_position(self._agent, position)
            self.set_velocity(self._agent, velocity)

    def get_colliding_bodies(self, handle):
        return [self.tags[tag] for tag in self.contacts if tag in self.tags]

    def body_tag(self, handle):
        return self.bodies[handle]["tag"]

    def find_body(self, tag):
        return self.tags.get(tag)


@pytest.fixture(scope="session")
def project_root():
    """Return the project root directory."""
    return PROJECT_ROOT


@pytest.fixture(scope="function")
def seed_rng():
    """Seed random number generators for reproducibility."""
    np.random.seed(42)
    import torch
    torch.manual_seed(42)


@pytest.fixture(scope="function")
def rng():
    return np.random.default_rng(1234)


@pytest.fixture(scope="function")
def env_config():
    """Small default staircase with a short episode cap."""
    return {
        "max_steps": 50,
        "n_steps": 5,
        "start_position": [0.0, 0.5, 3.0],
        "agent_size": 0.5,
        "jump_cooldown": 3,
    }


@pytest.fixture(scope="function")
def scripted_physics():
    return ScriptedPhysics()


@pytest.fixture(scope="function")
def scripted_env(env_config, scripted_physics):
    env = ClimbingEnvironment(env_config, physics=scripted_physics)
    return env


@pytest.fixture(scope="function")
def dqn_agent_config():
    """Minimal DQN agent config for testing."""
    return {
        "state_dim": STATE_DIM,
        "n_actions": N_ACTIONS,
        "gamma": 0.99,
        "lr": 1e-3,
        "batch_size": 8,
        "buffer_size": 256,
        "epsilon_start": 1.0,
        "epsilon_end": 0.05,
        "epsilon_decay_rate": 0.9,
        "hidden_dims": [32, 32],
        "device": "cpu",
        "seed": 7,
    }


@pytest.fixture(scope="function")
def ppo_agent_config():
    """Minimal PPO agent config for testing."""
    return {
        "state_dim": STATE_DIM,
        "n_actions": N_ACTIONS,
        "gamma": 0.99,
        "lam": 0.95,
        "clip_eps": 0.2,
        "update_epochs": 3,
        "actor_lr": 3e-4,
        "critic_lr": 1e-3,
        "ent_coef": 0.01,
        "hidden_dims": [32, 32],
        "device": "cpu",
        "seed": 7,
    }


@pytest.fixture(scope="function")
def make_state(rng):
    """Factory for random in-range state vectors."""
    def _make():
        return rng.uniform(-1.0, 1.0, size=STATE_DIM).astype(np.float32)
    return _make


@pytest.fixture(scope="function")
def physics_factory():
    """Builds fresh scripted physics worlds for tests needing several environments."""
    return ScriptedPhysics
