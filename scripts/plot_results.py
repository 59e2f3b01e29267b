import pandas as pd
import matplotlib.pyplot as plt
from pathlib import Path

# ============================================================
# Paths
# ============================================================
PROJECT_ROOT = Path(__file__).resolve().parents[1]
RESULTS_CSV = PROJECT_ROOT / "results.csv"
SIZE_ORDER = ["small", "medium", "large"]

print(f"Loading results from: {RESULTS_CSV}")

# ============================================================
# Load CSV
# ============================================================
df = pd.read_csv(RESULTS_CSV)
df.columns = df.columns.str.strip()

print(f"{(~df['feasible']).sum()} of {len(df)} runs ended with hard violations")

# Keep only feasible runs
df = df[df["feasible"]].copy()

# ============================================================
# Normalize soft score
# ============================================================
df["penalty_per_lesson"] = -df["soft_score"] / df["n_lessons"]

# ============================================================
# PLOT 1: Soft penalty per lesson across seeds
# ============================================================
plt.figure(figsize=(7, 4))
for inst in sorted(df["instance"].unique()):
    subset = df[df["instance"] == inst]
    plt.scatter(subset["seed"], subset["penalty_per_lesson"], label=inst, alpha=0.7)

plt.xlabel("Random seed")
plt.ylabel("Soft penalty per lesson")
plt.title("Soft penalty per lesson across seeds")
plt.legend()
plt.grid(True)
plt.tight_layout()

# ============================================================
# PLOT 2: Local search steps per second by instance
# ============================================================
plt.figure(figsize=(7, 4))
df["steps_per_s"] = df["steps"] / df["wall_time_s"]
for inst in sorted(df["instance"].unique()):
    subset = df[df["instance"] == inst]
    plt.scatter(subset["seed"], subset["steps_per_s"], label=inst, alpha=0.7)

plt.xlabel("Random seed")
plt.ylabel("Steps per second")
plt.title("Local search throughput across seeds")
plt.legend()
plt.grid(True)
plt.tight_layout()

# ============================================================
# PLOT 3: Mean penalty per lesson by instance size
# ============================================================
plt.figure(figsize=(6, 4))
grouped = (
    df.groupby("instance")["penalty_per_lesson"]
      .agg(["mean", "std"])
      .reindex([s for s in SIZE_ORDER if s in df["instance"].unique()])
)

plt.bar(grouped.index, grouped["mean"], yerr=grouped["std"], capsize=6)
plt.ylabel("Mean soft penalty per lesson")
plt.title("Solution quality by instance size")
plt.grid(axis="y")
plt.tight_layout()

# ============================================================
# PLOT 4: Penalty composition by constraint type
# ============================================================
plt.figure(figsize=(7, 4))

penalty_components = {
    "teacher_gap": "penalty_teacher_gap",
    "class_gap": "penalty_class_gap",
    "subject_distribution": "penalty_subject_distribution",
}

stack_data = (
    -df.groupby("instance")[list(penalty_components.values())]
      .mean()
      .reindex([s for s in SIZE_ORDER if s in df["instance"].unique()])
)

bottom = None
for label, col in penalty_components.items():
    if bottom is None:
        plt.bar(stack_data.index, stack_data[col], label=label)
        bottom = stack_data[col].copy()
    else:
        plt.bar(stack_data.index, stack_data[col], bottom=bottom, label=label)
        bottom += stack_data[col]

plt.ylabel("Mean penalty contribution")
plt.title("Penalty composition by constraint type")
plt.legend()
plt.grid(axis="y")
plt.tight_layout()

# ============================================================
# SHOW ALL FIGURES AT ONCE
# ============================================================
plt.show()
