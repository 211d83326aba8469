"""
Run all simulations sequentially.

Each simulation can also be run independently:
    python sim_snr_trace.py
    python sim_rxpower_mobility.py
"""

import sim_snr_trace
import sim_rxpower_mobility


def main():
    print("=" * 70)
    print("Running all simulations")
    print("=" * 70)

    # 1. SNR trace with fast fading and beamforming
    print("\n" + "-" * 60)
    results_snr = sim_snr_trace.simulate()
    sim_snr_trace.plot(results_snr)
    sim_snr_trace.save_csv(results_snr)

    # 2. Rx power with a moving receiver (path loss only)
    print("\n" + "-" * 60)
    results_mob = sim_rxpower_mobility.simulate()
    sim_rxpower_mobility.plot(results_mob)
    sim_rxpower_mobility.save_csv(results_mob)

    print("\n" + "=" * 70)
    print("All simulations complete.")
    print("=" * 70)


if __name__ == "__main__":
    main()
