"""Reference run: reflecting boundaries on [0, 1] with r(x, t) = x * exp(-t).

Solves the terminal system, integrates back to t = 0 and plots the value at
both ends of the domain.
"""

import matplotlib.pyplot as plt

from linear_hjb.config import Config
from linear_hjb.pipeline import run

T = 1.0
MU = -0.1
SIGMA = 0.1
RHO = 0.05
NUM_POINTS = 20


def main():
    config = Config.default().override(
        model__mu=MU,
        model__sigma=SIGMA,
        model__rho=RHO,
        model__horizon=T,
        grid__num_points=NUM_POINTS,
    )
    config.setup_logging()

    result = run(config)

    print(result.trajectories.iloc[[0, -1]].to_string(index=False))
    print("Saved:", ", ".join(result.saved_files))
    plt.show()


if __name__ == "__main__":
    main()
