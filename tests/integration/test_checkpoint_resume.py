"""Resuming training from checkpoints, and the assembled run entrypoints."""

import pytest
import yaml

from climbrl.engine import build_agent, build_orchestrator
from climbrl.envs import ClimbingEnvironment
from climbrl.policies.dqn import DQNAgent
from climbrl.policies.ppo import PPOAgent
from climbrl.runner import TrainingOrchestrator, TrainingState
from climbrl.trainer import PolicyEpisodeStrategy, ValueEpisodeStrategy
from climbrl.utils.checkpoint import CheckpointManager
from climbrl.utils.config_models import ExperimentConfig
from climbrl.utils.logger import Logger, LoggingSink

EPISODE_STEPS = 4


@pytest.fixture
def make_orchestrator(env_config, physics_factory, tmp_path):
    def _make(strategy):
        env = ClimbingEnvironment(dict(env_config, max_steps=EPISODE_STEPS), physics=physics_factory())
        return TrainingOrchestrator(
            env,
            strategy,
            config={"checkpoint_interval": 0},
            checkpoints=CheckpointManager(tmp_path / "models"),
            metrics_logger=Logger([LoggingSink()]),
        )
    return _make


@pytest.mark.integration
class TestResume:
    def test_resume_continues_counters(self, make_orchestrator, dqn_agent_config):
        first_agent = DQNAgent(dqn_agent_config)
        first = make_orchestrator(ValueEpisodeStrategy(first_agent, {"batch_size": 4}))
        first.start_training(3)

        second_agent = DQNAgent(dict(dqn_agent_config, seed=11))
        second = make_orchestrator(ValueEpisodeStrategy(second_agent, {"batch_size": 4}))
        assert second.load_checkpoint() is True
        assert second.completed_episodes == 3
        assert second_agent.exploration_rate == pytest.approx(first_agent.exploration_rate)
        assert second_agent.episode_count == 3

        stats = second.start_training(2)
        assert stats.current_episode == 5
        assert stats.total_episodes == 5
        assert stats.total_steps == 5 * EPISODE_STEPS
        # Rolling statistics restart with the resumed session.
        assert len(stats.reward_history) == 2
        metadata = second.checkpoints.load_metadata("climbing-model")
        assert metadata.total_episodes == 5
        assert [entry["episode"] for entry in metadata.history] == [3, 5]

    def test_missing_checkpoint_keeps_fresh_parameters(self, make_orchestrator, dqn_agent_config):
        orchestrator = make_orchestrator(ValueEpisodeStrategy(DQNAgent(dqn_agent_config)))
        assert orchestrator.load_checkpoint() is False
        assert orchestrator.completed_episodes == 0

    def test_incompatible_checkpoint(self, make_orchestrator, dqn_agent_config, ppo_agent_config):
        make_orchestrator(ValueEpisodeStrategy(DQNAgent(dqn_agent_config))).start_training(1)
        orchestrator = make_orchestrator(PolicyEpisodeStrategy(PPOAgent(ppo_agent_config)))
        assert orchestrator.load_checkpoint() is False
        assert orchestrator.completed_episodes == 0

    def test_corrupt_checkpoint(self, make_orchestrator, dqn_agent_config, tmp_path):
        path = tmp_path / "models" / "climbing-model.pt"
        path.parent.mkdir(parents=True)
        path.write_bytes(b"")
        orchestrator = make_orchestrator(ValueEpisodeStrategy(DQNAgent(dqn_agent_config)))
        assert orchestrator.load_checkpoint() is False


@pytest.mark.integration
class TestAssembly:
    @pytest.fixture
    def small_config(self):
        return ExperimentConfig.from_dict(
            {
                "env": {"max_steps": 10},
                "ppo": {"update_epochs": 2, "hidden_dims": [16]},
                "dqn": {"batch_size": 4, "hidden_dims": [16]},
                "training": {"algorithm": "ppo", "checkpoint_interval": 0, "seed": 3},
            }
        )

    def test_build_orchestrator(self, small_config, tmp_path):
        orchestrator = build_orchestrator(small_config, checkpoint_dir=tmp_path)
        assert orchestrator.strategy.name == "policy"
        stats = orchestrator.start_training(1)
        assert stats.current_episode == 1
        assert stats.state is TrainingState.COMPLETED
        assert (tmp_path / "climbing-model.pt").exists()

    def test_algorithm_override(self, small_config, tmp_path):
        orchestrator = build_orchestrator(small_config, algorithm="dqn", checkpoint_dir=tmp_path)
        assert orchestrator.strategy.name == "value"
        assert orchestrator.strategy.agent.state_dim == 15

    def test_unknown_algorithm(self, small_config):
        with pytest.raises(KeyError):
            build_agent(small_config, "a2c")


@pytest.mark.integration
@pytest.mark.slow
class TestTrainEntrypoint:
    def test_train_and_resume(self, tmp_path):
        import train

        config_path = tmp_path / "config.yaml"
        config_path.write_text(
            yaml.safe_dump(
                {
                    "env": {"max_steps": 8},
                    "dqn": {"batch_size": 4, "hidden_dims": [16]},
                    "training": {"algorithm": "dqn", "episodes": 2, "checkpoint_interval": 0},
                }
            ),
            encoding="utf-8",
        )
        checkpoint_dir = tmp_path / "models"
        args = ["--config", str(config_path), "--checkpoint-dir", str(checkpoint_dir), "--seed", "5"]

        assert train.main(args) == 0
        assert (checkpoint_dir / "climbing-model.pt").exists()

        assert train.main(args + ["--resume", "--episodes", "1"]) == 0
        metadata = CheckpointManager(checkpoint_dir).load_metadata("climbing-model")
        assert metadata.total_episodes == 3
