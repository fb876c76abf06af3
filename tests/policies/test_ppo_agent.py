"""Tests for the PPO actor-critic agent and its advantage utilities."""

import numpy as np
import pytest
import torch

from climbrl.errors import InsufficientData, InvalidInput
from climbrl.policies.ppo import PPOAgent, Trajectory, compute_gae
from climbrl.policies.ppo.base import normalize_advantages, sample_categorical
from climbrl.utils.torch_io import all_finite


class _FixedDraw:
    def __init__(self, value):
        self.value = value

    def random(self):
        return self.value


def make_trajectory(make_state, agent, length=12, terminal_reward=10.0):
    trajectory = Trajectory()
    for t in range(length):
        state = make_state()
        selection = agent.select_action(state)
        done = t == length - 1
        reward = terminal_reward if done else -0.01
        trajectory.append(state, selection.action, reward, selection.log_prob, selection.value, done)
    return trajectory


@pytest.mark.unit
class TestAdvantages:
    def test_gae_backward_recursion(self):
        advantages = compute_gae([1.0, 0.0, -1.0], [0.5, 0.5, 0.5], [False, False, True], gamma=1.0, lam=1.0)
        np.testing.assert_allclose(advantages, [-0.5, -1.5, -1.5])

    def test_done_cuts_bootstrap(self):
        advantages = compute_gae([1.0, 1.0], [0.0, 100.0], [True, True], gamma=0.9, lam=0.9)
        np.testing.assert_allclose(advantages, [1.0, -99.0])

    def test_length_mismatch(self):
        with pytest.raises(InvalidInput):
            compute_gae([1.0, 2.0], [0.0], [False, True], gamma=0.99, lam=0.95)

    def test_normalisation(self):
        normalized = normalize_advantages(np.array([1.0, 2.0, 3.0, 4.0]))
        assert normalized.mean() == pytest.approx(0.0, abs=1e-9)
        assert normalized.std() == pytest.approx(1.0)

    def test_constant_advantages_normalise_to_zero(self):
        np.testing.assert_array_equal(normalize_advantages(np.full(5, 3.0)), np.zeros(5))

    def test_agent_compute_advantages(self, ppo_agent_config):
        agent = PPOAgent(ppo_agent_config)
        advantages = agent.compute_advantages([1.0, 0.0, -1.0], [0.5, 0.5, 0.5], [False, False, True])
        assert advantages.dtype == np.float32
        assert advantages.shape == (3,)
        assert advantages.mean() == pytest.approx(0.0, abs=1e-6)


@pytest.mark.unit
class TestSampling:
    def test_degenerate_distribution(self, rng):
        assert all(sample_categorical([0.0, 0.0, 1.0], rng) == 2 for _ in range(20))

    def test_rounding_falls_back_to_last_category(self):
        assert sample_categorical([0.2, 0.2], _FixedDraw(0.999)) == 1

    def test_empty_distribution(self):
        with pytest.raises(InvalidInput):
            sample_categorical([])


@pytest.mark.unit
class TestPPOAgent:
    def test_action_probabilities_sum_to_one(self, ppo_agent_config, make_state):
        agent = PPOAgent(ppo_agent_config)
        probs = agent.action_probabilities(make_state())
        assert probs.shape == (agent.n_actions,)
        assert probs.sum() == pytest.approx(1.0, abs=1e-5)

    def test_select_action(self, ppo_agent_config, make_state):
        agent = PPOAgent(ppo_agent_config)
        state = make_state()
        selection = agent.select_action(state)
        assert 0 <= selection.action < agent.n_actions
        assert selection.log_prob <= 0.0
        assert np.isfinite(selection.value)
        greedy = agent.select_action(state, stochastic=False)
        assert greedy.action == int(np.argmax(agent.action_probabilities(state)))

    def test_invalid_state(self, ppo_agent_config):
        agent = PPOAgent(ppo_agent_config)
        with pytest.raises(InvalidInput):
            agent.select_action(np.zeros(2))

    def test_train(self, ppo_agent_config, make_state, seed_rng):
        agent = PPOAgent(ppo_agent_config)
        trajectories = [make_trajectory(make_state, agent), make_trajectory(make_state, agent, length=5)]
        stats = agent.train(trajectories)
        assert np.isfinite(stats["policy_loss"])
        assert np.isfinite(stats["value_loss"])
        assert np.isfinite(stats["entropy"])
        assert stats["epochs"] == ppo_agent_config["update_epochs"]
        assert stats["recovered"] is False

    @pytest.mark.parametrize("module", ["actor", "critic"])
    def test_recovers_from_non_finite_parameters(self, ppo_agent_config, make_state, module):
        agent = PPOAgent(ppo_agent_config)
        trajectory = make_trajectory(make_state, agent)
        with torch.no_grad():
            for param in getattr(agent, module).parameters():
                param.fill_(float("nan"))

        stats = agent.train([trajectory])
        assert stats["recovered"] is True
        assert stats["epochs"] == 0
        assert all_finite(agent.actor, agent.critic)

        stats = agent.train([trajectory])
        assert stats["recovered"] is False
        assert stats["epochs"] == ppo_agent_config["update_epochs"]
        assert np.isfinite(stats["policy_loss"])

    def test_train_without_steps(self, ppo_agent_config):
        agent = PPOAgent(ppo_agent_config)
        with pytest.raises(InsufficientData):
            agent.train([Trajectory()])

    def test_state_dict_roundtrip(self, ppo_agent_config, make_state, tmp_path):
        agent = PPOAgent(ppo_agent_config)
        agent.train([make_trajectory(make_state, agent)])
        path = tmp_path / "nested" / "ppo.pt"
        agent.save(str(path))

        restored = PPOAgent(dict(ppo_agent_config, seed=3))
        restored.load(str(path))
        state = make_state()
        np.testing.assert_allclose(restored.action_probabilities(state), agent.action_probabilities(state), rtol=1e-6)

    def test_shape_mismatch(self, ppo_agent_config):
        agent = PPOAgent(ppo_agent_config)
        other = PPOAgent(dict(ppo_agent_config, n_actions=4))
        with pytest.raises(ValueError):
            agent.load_state_dict(other.state_dict())
