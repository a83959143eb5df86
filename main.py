import numpy as np
import torch as th
import gymnasium as gym
from tqdm import tqdm

from a2c_rl.baselines.a2c.a2c import a2c
from a2c_rl.common.buffers import RolloutStorage
from a2c_rl.common.loggers import build_logger
from a2c_rl.common.spaces import ActionSpace

# -----------------------------
# Run settings
# -----------------------------
ENV_ID = "CartPole-v1"
SEED = 0
NUM_ENVS = 8
NUM_STEPS = 5
NUM_UPDATES = 2000
GAMMA = 0.99
TAU = 0.95
USE_GAE = False
LOG_EVERY = 10

device = "cpu"  # or "cuda"


# -----------------------------
# Env factories
# -----------------------------
def make_env(seed: int):
    """
    Factory helper: create a fresh env with a given seed.
    """
    env = gym.make(ENV_ID)
    env.reset(seed=seed)
    env.action_space.seed(seed)
    return env


def reset_all(envs):
    return np.stack([env.reset()[0] for env in envs]).astype(np.float32)


def step_all(envs, actions, episode_returns, finished):
    """
    Step every env once, resetting the ones whose episode ended.

    Returns (obs, reward, mask), with mask == 0 marking a fresh episode.
    """
    obs, rewards, masks = [], [], []
    for i, (env, a) in enumerate(zip(envs, actions)):
        o, r, terminated, truncated, _ = env.step(int(a))
        episode_returns[i] += float(r)
        done = bool(terminated or truncated)
        if done:
            finished.append(episode_returns[i])
            episode_returns[i] = 0.0
            o, _ = env.reset()
        obs.append(o)
        rewards.append([r])
        masks.append([0.0 if done else 1.0])
    return (
        np.stack(obs).astype(np.float32),
        np.asarray(rewards, dtype=np.float32),
        np.asarray(masks, dtype=np.float32),
    )


# -----------------------------
# Build envs + algo + storage
# -----------------------------
th.manual_seed(SEED)
envs = [make_env(SEED + i) for i in range(NUM_ENVS)]
obs_dim = int(np.prod(envs[0].observation_space.shape))
action_space = ActionSpace.from_gym(envs[0].action_space)

algo = a2c(
    obs_dim=obs_dim,
    action_space=action_space,
    device=device,
)
policy = algo.policy

storage = RolloutStorage(
    NUM_STEPS,
    NUM_ENVS,
    (obs_dim,),
    action_space,
    policy.recurrent_hidden_state_size,
    device=device,
)
storage.set_first_observation(reset_all(envs))

logger = build_logger(log_dir="./runs", exp_name="a2c_" + ENV_ID, console_every=LOG_EVERY)
logger.dump_config({"env_id": ENV_ID, "num_envs": NUM_ENVS, "num_steps": NUM_STEPS, "gamma": GAMMA, **algo.config()})
logger.set_step_fn(lambda: algo.update_calls)

# -----------------------------
# Train: collect -> returns -> update
# -----------------------------
episode_returns = [0.0] * NUM_ENVS
finished = []

with logger, tqdm(total=NUM_UPDATES, unit="upd", dynamic_ncols=True) as pbar:
    for _ in range(NUM_UPDATES):
        for t in range(NUM_STEPS):
            with th.no_grad():
                out = policy.act(storage.observations[t], storage.hidden_states[t], storage.masks[t])
            obs, reward, mask = step_all(envs, out["action"].view(-1).cpu().numpy(), episode_returns, finished)
            storage.insert(obs, out["hidden"], out["action"], out["action_log_probs"], out["value"], reward, mask)

        with th.no_grad():
            next_value = policy.get_values(storage.observations[-1], storage.hidden_states[-1], storage.masks[-1])
        storage.compute_returns(next_value, USE_GAE, GAMMA, TAU)

        metrics = algo.update(storage)
        storage.after_update()

        logger.log(metrics, pbar=pbar, prefix="train")
        if finished:
            logger.log({"reward_mean": float(np.mean(finished[-10:]))}, pbar=pbar, prefix="rollout")
        pbar.update(1)

for env in envs:
    env.close()
