"""End-to-end tests for the training orchestrator."""

import threading
from unittest.mock import Mock

import pytest

from climbrl.envs import ClimbingEnvironment
from climbrl.errors import PersistenceFailure
from climbrl.policies.dqn import DQNAgent
from climbrl.policies.ppo import PPOAgent
from climbrl.runner import TrainingOrchestrator, TrainingState
from climbrl.trainer import PolicyEpisodeStrategy, ValueEpisodeStrategy
from climbrl.utils.checkpoint import CheckpointManager
from climbrl.utils.logger import Logger, LogSink

EPISODE_STEPS = 5


@pytest.fixture
def short_env(env_config, scripted_physics):
    # The scripted agent never moves, so every episode ends on the step cap.
    return ClimbingEnvironment(dict(env_config, max_steps=EPISODE_STEPS), physics=scripted_physics)


@pytest.fixture
def dqn_strategy(dqn_agent_config):
    return ValueEpisodeStrategy(DQNAgent(dqn_agent_config), {"batch_size": 4})


@pytest.fixture
def sink():
    return Mock(spec=LogSink)


def make_orchestrator(env, strategy, tmp_path=None, sink=None, **config):
    settings = {"checkpoint_interval": 0, "log_interval": 1}
    settings.update(config)
    return TrainingOrchestrator(
        env,
        strategy,
        config=settings,
        checkpoints=CheckpointManager(tmp_path) if tmp_path is not None else None,
        metrics_logger=Logger([sink or Mock(spec=LogSink)]),
    )


@pytest.mark.integration
class TestTrainingRun:
    def test_value_training(self, short_env, dqn_strategy, sink):
        orchestrator = make_orchestrator(short_env, dqn_strategy, sink=sink)
        stats = orchestrator.start_training(3)

        assert stats.state is TrainingState.COMPLETED
        assert stats.current_episode == 3
        assert stats.total_episodes == 3
        assert stats.total_steps == 3 * EPISODE_STEPS
        assert len(stats.reward_history) == 3
        assert stats.success_history == [False, False, False]
        assert stats.success_rate == 0.0
        assert stats.exploration_rate == pytest.approx(0.9 ** 3)
        assert dqn_strategy.agent.episode_count == 3

        assert sink.log_metrics.call_count == 3
        phase, metrics = sink.log_metrics.call_args.args
        assert phase == "train"
        assert metrics["train/episode"] == 2
        assert metrics["train/termination_reason"] == "max_steps"
        assert "train/loss" in metrics
        sink.start.assert_called_once()
        sink.stop.assert_called_once()

    def test_policy_training(self, short_env, ppo_agent_config):
        strategy = PolicyEpisodeStrategy(PPOAgent(ppo_agent_config))
        orchestrator = make_orchestrator(short_env, strategy)
        results = []
        orchestrator.on_episode_complete(lambda result, stats: results.append(result))
        stats = orchestrator.start_training(2)

        assert stats.current_episode == 2
        assert stats.exploration_rate is None
        assert [r.episode for r in results] == [0, 1]
        assert all("policy_loss" in r.train_stats for r in results)

    def test_cannot_start_twice(self, short_env, dqn_strategy):
        orchestrator = make_orchestrator(short_env, dqn_strategy)
        errors = []

        def restart(result, stats):
            try:
                orchestrator.start_training(1)
            except RuntimeError as exc:
                errors.append(exc)

        orchestrator.on_episode_complete(restart)
        orchestrator.start_training(1)
        assert len(errors) == 1

    def test_reset_stats(self, short_env, dqn_strategy):
        orchestrator = make_orchestrator(short_env, dqn_strategy)
        orchestrator.start_training(2)
        orchestrator.reset_stats()
        stats = orchestrator.get_training_stats()
        assert stats.current_episode == 0
        assert stats.reward_history == []
        assert stats.state is TrainingState.IDLE


@pytest.mark.integration
class TestCallbacks:
    def test_callbacks_receive_results(self, short_env, dqn_strategy):
        orchestrator = make_orchestrator(short_env, dqn_strategy)
        episodes, completions = [], []
        orchestrator.on_episode_complete(lambda result, stats: episodes.append((result.episode, stats.current_episode)))
        orchestrator.on_training_complete(completions.append)
        orchestrator.start_training(3)

        assert episodes == [(0, 1), (1, 2), (2, 3)]
        assert len(completions) == 1
        assert completions[0].state is TrainingState.COMPLETED

    def test_failing_callback_does_not_stop_training(self, short_env, dqn_strategy):
        orchestrator = make_orchestrator(short_env, dqn_strategy)
        orchestrator.on_episode_complete(Mock(side_effect=ValueError("boom")))
        orchestrator.on_training_complete(Mock(side_effect=ValueError("boom")))
        stats = orchestrator.start_training(2)
        assert stats.current_episode == 2


@pytest.mark.integration
class TestControlFlow:
    def test_pause_and_resume_outside_training(self, short_env, dqn_strategy):
        orchestrator = make_orchestrator(short_env, dqn_strategy)
        assert orchestrator.pause_training() is False
        assert orchestrator.resume_training() is False

    def test_stop_between_episodes(self, short_env, dqn_strategy):
        orchestrator = make_orchestrator(short_env, dqn_strategy)

        def stop_after_second(result, stats):
            if stats.current_episode == 2:
                orchestrator.stop_training()

        orchestrator.on_episode_complete(stop_after_second)
        stats = orchestrator.start_training(10)
        assert stats.current_episode == 2
        assert stats.state is TrainingState.STOPPED

    def test_stop_before_start_ends_that_run(self, short_env, dqn_strategy):
        orchestrator = make_orchestrator(short_env, dqn_strategy)
        orchestrator.stop_training()
        stats = orchestrator.start_training(3)
        assert stats.current_episode == 0
        assert stats.state is TrainingState.STOPPED

        stats = orchestrator.start_training(2)
        assert stats.current_episode == 2
        assert stats.state is TrainingState.COMPLETED

    def test_pause_blocks_until_resumed(self, short_env, dqn_strategy):
        orchestrator = make_orchestrator(short_env, dqn_strategy, pause_poll=0.01)
        states = []

        def pause_once(result, stats):
            if stats.current_episode == 1:
                assert orchestrator.pause_training() is True
                states.append(orchestrator.state)
                threading.Timer(0.05, orchestrator.resume_training).start()

        orchestrator.on_episode_complete(pause_once)
        stats = orchestrator.start_training(3)
        assert states == [TrainingState.PAUSED]
        assert stats.current_episode == 3
        assert stats.state is TrainingState.COMPLETED

    def test_stop_while_paused(self, short_env, dqn_strategy):
        orchestrator = make_orchestrator(short_env, dqn_strategy, pause_poll=0.01)

        def pause_then_stop(result, stats):
            orchestrator.pause_training()
            threading.Timer(0.05, orchestrator.stop_training).start()

        orchestrator.on_episode_complete(pause_then_stop)
        stats = orchestrator.start_training(5)
        assert stats.current_episode == 1
        assert stats.state is TrainingState.STOPPED

    def test_visual_mode_stop_discards_partial_episode(self, short_env, dqn_strategy):
        renderer = Mock()
        orchestrator = TrainingOrchestrator(
            short_env,
            dqn_strategy,
            config={"checkpoint_interval": 0},
            renderer=renderer,
            metrics_logger=Logger([Mock(spec=LogSink)]),
        )
        renderer.render.side_effect = lambda: (
            orchestrator.stop_training() if renderer.render.call_count == EPISODE_STEPS + 2 else None
        )
        assert orchestrator.visual_mode

        stats = orchestrator.start_training(3)
        assert stats.current_episode == 1
        assert stats.state is TrainingState.STOPPED
        assert renderer.update_agent_pose.call_count == EPISODE_STEPS + 2
        assert list(renderer.update_agent_pose.call_args.args[0]) == pytest.approx([0.0, 0.5, 3.0])
        # The partial episode gets no exploration decay but keeps its stored transitions.
        assert stats.exploration_rate == pytest.approx(0.9)
        assert len(dqn_strategy.agent.buffer) == EPISODE_STEPS + 2

    def test_step_delay_uses_sleep(self, short_env, dqn_strategy):
        sleep = Mock()
        orchestrator = TrainingOrchestrator(
            short_env,
            dqn_strategy,
            config={"checkpoint_interval": 0, "step_delay": 0.01},
            metrics_logger=Logger([Mock(spec=LogSink)]),
            sleep=sleep,
        )
        orchestrator.start_training(2)
        assert sleep.call_count == 2 * EPISODE_STEPS
        sleep.assert_called_with(0.01)


@pytest.mark.integration
class TestCheckpointing:
    def test_periodic_and_final_checkpoints(self, short_env, dqn_strategy, tmp_path):
        orchestrator = make_orchestrator(short_env, dqn_strategy, tmp_path, checkpoint_interval=2)
        orchestrator.checkpoints.save_checkpoint = Mock(wraps=orchestrator.checkpoints.save_checkpoint)
        orchestrator.start_training(5)

        assert orchestrator.checkpoints.save_checkpoint.call_count == 3
        metadata = orchestrator.checkpoints.load_metadata("climbing-model")
        assert metadata.total_episodes == 5
        assert metadata.total_steps == 5 * EPISODE_STEPS
        assert [entry["episode"] for entry in metadata.history] == [2, 4, 5]
        assert metadata.hyperparameters["algorithm"] == "dqn"

    def test_final_checkpoint_not_duplicated(self, short_env, dqn_strategy, tmp_path):
        orchestrator = make_orchestrator(short_env, dqn_strategy, tmp_path, checkpoint_interval=2)
        orchestrator.checkpoints.save_checkpoint = Mock(wraps=orchestrator.checkpoints.save_checkpoint)
        orchestrator.start_training(4)
        assert orchestrator.checkpoints.save_checkpoint.call_count == 2

    def test_save_failure_is_not_fatal(self, short_env, dqn_strategy, tmp_path, sink):
        orchestrator = make_orchestrator(short_env, dqn_strategy, tmp_path, sink=sink, checkpoint_interval=1)
        orchestrator.checkpoints.save_checkpoint = Mock(side_effect=PersistenceFailure("disk full"))
        stats = orchestrator.start_training(3)
        assert stats.current_episode == 3
        assert stats.state is TrainingState.COMPLETED
        levels = [c.args[0] for c in sink.log_event.call_args_list]
        # Three periodic attempts plus the final one.
        assert levels.count("warn") == 4
