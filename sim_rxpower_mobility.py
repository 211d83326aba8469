"""
Rx power of a CW link while the rx walks away from a static tx.

RxPwr = TxPwr - PL, with no noise figure, bandwidth or antenna gains.
"""
import csv

import matplotlib.pyplot as plt
import numpy as np

from sim_common import (
    ieee_setup, save_figure, build_path_loss, F_MOBILITY_HZ,
    MOBILITY_TX_POWER_DBM, MOBILITY_SCENARIO, MOBILITY_STEP_M,
    TX_HEIGHT_M, RX_HEIGHT_M,
)
from channel import Endpoint


def simulate(sim_time_ms=4500, time_res_ms=1, step_m=MOBILITY_STEP_M,
             scenario=MOBILITY_SCENARIO, seed=1):
    rng = np.random.default_rng(seed)
    path_loss = build_path_loss(F_MOBILITY_HZ, scenario)

    tx = Endpoint(0, position=[0.0, 0.0, TX_HEIGHT_M])
    rx = Endpoint(1, position=[step_m, 0.0, RX_HEIGHT_M])

    n_steps = sim_time_ms // time_res_ms
    results = {key: np.zeros(n_steps) for key in
               ['time_s', 'distance_m', 'rx_power_dBm']}

    print(f"Rx power vs distance ({scenario}, f={F_MOBILITY_HZ/1e9:.0f} GHz, "
          f"P_tx={MOBILITY_TX_POWER_DBM:.0f} dBm)")

    for i in range(n_steps):
        rx.move_to([step_m * (i + 1), 0.0, RX_HEIGHT_M])
        results['time_s'][i] = i * time_res_ms * 1e-3
        results['distance_m'][i] = tx.distance_from(rx)
        results['rx_power_dBm'][i] = path_loss.calc_rx_power_dBm(
            MOBILITY_TX_POWER_DBM, tx, rx, rng)

    for i in range(0, n_steps, max(1, n_steps // 6)):
        print(f"  t={results['time_s'][i]:6.3f}s d={results['distance_m'][i]:7.1f}m: "
              f"P_rx={results['rx_power_dBm'][i]:7.2f} dBm")
    return results


def plot(results):
    ieee_setup()
    fig, ax = plt.subplots(figsize=(3.5, 2.8))
    ax.semilogx(results['distance_m'], results['rx_power_dBm'], '.',
                color='#7f7f7f', ms=1, alpha=0.5, label='With shadowing')
    ax.set_xlabel('3D distance (m)')
    ax.set_ylabel('Rx power (dBm)')
    ax.legend(loc='upper right')
    ax.grid(True, which='both', ls='--', alpha=0.3)
    save_figure(fig, 'rxpower_mobility')


def save_csv(results):
    with open('rxpower_mobility.csv', 'w', newline='') as f:
        w = csv.writer(f)
        w.writerow(['time_s', 'distance_m', 'rx_power_dBm'])
        for i in range(len(results['time_s'])):
            w.writerow([f"{results['time_s'][i]:.3f}",
                        f"{results['distance_m'][i]:.2f}",
                        f"{results['rx_power_dBm'][i]:.4f}"])
    print("Saved: rxpower_mobility.csv")


if __name__ == "__main__":
    results = simulate()
    plot(results)
    save_csv(results)
