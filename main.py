from __future__ import annotations

import argparse
import json
import logging
import time
from pathlib import Path
from typing import Any

from cleaning.outliers import exclusion_counts
from config import (
    DEFAULT_PRACTICE_TRIALS,
    DEFAULT_REFRESH_RATE_HZ,
    DEFAULT_TOTAL_TRIALS,
    DEFAULT_TOUCH_SAMPLING_HZ,
    FIGURES_DIR,
    ISI_MAX_MS,
    ISI_MIN_MS,
    RANDOM_STATE,
    RESULTS_DIR,
    SESSION_STORE_DIR,
    set_global_seed,
)
from protocol.simulation import run_simulated_session
from schemas.session import (
    CalibrationData,
    OutlierMethod,
    Paradigm,
    StimulusModality,
    build_configuration,
    load_session,
)
from scoring.summary import summarize_session, trials_to_frame
from storage.json_store import JsonSessionStore
from validation.device_profiler import (
    calibration_limitations,
    check_calibration,
    cross_modal_warning,
    describe_limitations,
)
from validation.reliability import (
    build_reliability_report,
    paired_session_rts,
    plot_bland_altman,
    save_reliability_report,
)

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s - %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger("REFLEX")


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Reaction-time trial protocol engine")
    p.add_argument("--mode", choices=["simulate", "reliability", "calibration"], default="simulate")
    p.add_argument("--paradigm", choices=[m.value for m in Paradigm], default=Paradigm.SRT.value)
    p.add_argument("--modality", choices=[m.value for m in StimulusModality], default=StimulusModality.VISUAL.value)
    p.add_argument("--trials", type=int, default=DEFAULT_TOTAL_TRIALS, help="Number of test trials")
    p.add_argument("--practice", type=int, default=DEFAULT_PRACTICE_TRIALS, help="Number of practice trials")
    p.add_argument("--isi-min", type=float, default=ISI_MIN_MS, help="Minimum inter-stimulus interval (ms)")
    p.add_argument("--isi-max", type=float, default=ISI_MAX_MS, help="Maximum inter-stimulus interval (ms)")
    p.add_argument("--outlier-method", choices=[m.value for m in OutlierMethod], default=OutlierMethod.MAD.value)
    p.add_argument("--refresh-hz", type=float, default=DEFAULT_REFRESH_RATE_HZ, help="Display refresh rate")
    p.add_argument("--touch-hz", type=float, default=DEFAULT_TOUCH_SAMPLING_HZ, help="Touch sampling rate")
    p.add_argument("--seed", type=int, default=RANDOM_STATE)
    p.add_argument("--store-dir", type=str, default=None, help="Directory of the JSON session store")
    p.add_argument("--output-dir", type=str, default=None, help="Directory for summaries and reports")
    p.add_argument("--session-a", type=str, default=None, help="First session JSON (reliability mode)")
    p.add_argument("--session-b", type=str, default=None, help="Second session JSON (reliability mode)")
    p.add_argument("--plot", type=str, default=None, help="Bland-Altman PNG path (reliability mode)")
    return p.parse_args(argv)


def _emit(payload: dict[str, Any]) -> None:
    print(json.dumps(payload, indent=2, default=str))


def run_simulation(args: argparse.Namespace) -> dict[str, Any]:
    """Simulate a full session on a virtual clock, clean it and save the results."""
    t_start = time.perf_counter()
    set_global_seed(args.seed)

    config = build_configuration(
        paradigm=args.paradigm,
        stimulus_modality=args.modality,
        total_trials=args.trials,
        practice_trials=args.practice,
        isi_min_ms=args.isi_min,
        isi_max_ms=args.isi_max,
        outlier_method=args.outlier_method,
    )
    calibration = CalibrationData(refresh_rate_hz=args.refresh_hz, touch_sampling_hz=args.touch_hz)
    check_calibration(calibration.refresh_rate_hz, calibration.touch_sampling_hz)

    store_dir = Path(args.store_dir) if args.store_dir else SESSION_STORE_DIR
    store = JsonSessionStore(store_dir)

    logger.info("=" * 60)
    logger.info("SIMULATED SESSION")
    logger.info("  Paradigm: %s (%s)", config.paradigm.value, config.stimulus_modality.value)
    logger.info("  Trials: %d practice + %d test", config.practice_trials, config.total_trials)
    logger.info("  Latency offset: %.2f ms", calibration.device_latency_offset_ms)
    logger.info("=" * 60)

    session, verdicts = run_simulated_session(config, store, seed=args.seed, calibration=calibration)
    summary = summarize_session(session.trials, config.paradigm)
    summary["session_id"] = session.session_id
    summary["exclusions"] = exclusion_counts(verdicts)
    summary["calibration_limitations"] = describe_limitations(session.calibration_limitations)

    output_dir = Path(args.output_dir) if args.output_dir else RESULTS_DIR
    output_dir.mkdir(parents=True, exist_ok=True)
    stem = f"{config.paradigm.value}_{session.session_id}"
    summary_path = output_dir / f"summary_{stem}.json"
    summary_path.write_text(json.dumps(summary, indent=2), encoding="utf-8")
    trials_path = output_dir / f"trials_{stem}.csv"
    trials_to_frame(session.trials).to_csv(trials_path, index=False)

    logger.info("Mean RT %.1f ms (SD %.1f) over %d valid trials", summary["mean_rt"], summary["sd_rt"], summary["n_valid"])
    logger.info("Session: %s", store.path_for(session.session_id))
    logger.info("Summary: %s", summary_path)
    logger.info("Trials: %s", trials_path)
    logger.info("Done in %.2fs", time.perf_counter() - t_start)
    return summary


def run_reliability(args: argparse.Namespace) -> dict[str, Any]:
    """Test-retest reliability between two stored sessions."""
    if not args.session_a or not args.session_b:
        raise SystemExit("--session-a and --session-b are required in reliability mode")
    session_a = load_session(Path(args.session_a))
    session_b = load_session(Path(args.session_b))

    warning = cross_modal_warning([
        session_a.configuration.stimulus_modality,
        session_b.configuration.stimulus_modality,
    ])
    if warning:
        logger.warning(warning)
    if session_a.configuration.paradigm != session_b.configuration.paradigm:
        logger.warning(
            "Comparing different paradigms: %s vs %s",
            session_a.configuration.paradigm.value,
            session_b.configuration.paradigm.value,
        )

    rts_a, rts_b = paired_session_rts(session_a.trials, session_b.trials)
    report = build_reliability_report(rts_a, rts_b, labels=(session_a.session_id, session_b.session_id))
    report["cross_modal_warning"] = warning

    output_dir = Path(args.output_dir) if args.output_dir else RESULTS_DIR
    save_reliability_report(report, output_dir)
    plot_bland_altman(rts_a, rts_b, Path(args.plot) if args.plot else FIGURES_DIR / "bland_altman.png")
    logger.info(report["summary"])
    return report


def run_calibration(args: argparse.Namespace) -> dict[str, Any]:
    """Report the derived latency offset and what it does not cover."""
    result = check_calibration(args.refresh_hz, args.touch_hz)
    codes = calibration_limitations(args.modality)
    result["modality"] = args.modality
    result["limitations"] = dict(zip(codes, describe_limitations(codes)))
    logger.info(
        "Offset %.2f ms at %g Hz refresh / %g Hz touch (%s)",
        result["device_latency_offset_ms"],
        args.refresh_hz,
        args.touch_hz,
        "valid" if result["is_valid"] else f"{len(result['warnings'])} warnings",
    )
    return result


def main(argv: list[str] | None = None) -> None:
    args = parse_args(argv)

    if args.mode == "simulate":
        _emit(run_simulation(args))
    elif args.mode == "reliability":
        _emit(run_reliability(args))
    elif args.mode == "calibration":
        _emit(run_calibration(args))


if __name__ == "__main__":
    main()
