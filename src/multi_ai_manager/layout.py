"""布局规划 - 等分网格的分屏序列

把一个区域等分为 k 份，只能通过 k-1 次"从剩余区域切下一块"完成。
第 i 次（1 起始）必须切下当前剩余区域的 1/(k-i+1)：
切之前剩余 (k-i+1)/k，切掉其中 1/(k-i+1) 恰好是总量的 1/k，
剩下 (k-i)/k 留给后面 k-i 次，满足同样的前提。

后端只接受整数百分比，这里四舍五入，误差不跨步修正。

区域坐标为 (列, 行)。每次分屏都以剩余区域为父区域（列分屏是第 0 列，
行分屏是该列第 0 行），新区域紧贴在剩余区域之后出现，
所以第 i 次分屏创建的是下标 k-i 的区域（从右往左 / 从下往上生成）。

布局示例（3 列 x 2 行）：
┌──────────┬──────────┬──────────┐
│ (0,0) AI │ (1,0) AI │ (2,0) AI │
├──────────┼──────────┼──────────┤
│ (0,1) sh │ (1,1) sh │ (2,1) sh │
└──────────┴──────────┴──────────┘
"""

from dataclasses import dataclass

from .models import Axis, ColumnPlan, RowRole, SplitStep


def split_fractions(k: int) -> list[int]:
    """计算把区域等分为 k 份的分屏百分比序列

    Args:
        k: 份数（>= 1）

    Returns:
        k-1 个整数百分比，第 i 个是当时剩余区域的占比
    """
    if k < 1:
        raise ValueError(f"份数必须 >= 1: {k}")
    return [round(100 / (k - i + 1)) for i in range(1, k)]


def apply_fractions(fractions: list[int]) -> list[float]:
    """在单位区域上依次应用分屏百分比，返回各部分大小

    返回顺序与区域下标一致：第 0 个是最终剩余区域，
    其后依次是最后一次、倒数第二次……切下的部分。
    """
    remaining = 1.0
    carved = []
    for percent in fractions:
        part = remaining * percent / 100
        carved.append(part)
        remaining -= part
    return [remaining] + list(reversed(carved))


@dataclass(frozen=True)
class LayoutPlan:
    """与后端无关的网格布局"""
    columns: tuple[ColumnPlan, ...]

    @property
    def column_count(self) -> int:
        return len(self.columns)

    @property
    def rows_per_column(self) -> int:
        return len(self.columns[0].rows) if self.columns else 0

    @property
    def column_steps(self) -> list[SplitStep]:
        """列分屏（全部以第 0 列为父区域）"""
        k = self.column_count
        return [
            SplitStep(Axis.HORIZONTAL, (0, 0), percent, (k - i, 0))
            for i, percent in enumerate(split_fractions(k), start=1)
        ]

    def row_steps(self, column: int) -> list[SplitStep]:
        """某一列的行分屏（全部以该列第 0 行为父区域）"""
        k = len(self.columns[column].rows)
        return [
            SplitStep(Axis.VERTICAL, (column, 0), percent, (column, k - i))
            for i, percent in enumerate(split_fractions(k), start=1)
        ]

    @property
    def steps(self) -> list[SplitStep]:
        """可直接执行的完整分屏序列：先所有列，再逐列分行"""
        result = list(self.column_steps)
        for column in range(self.column_count):
            result.extend(self.row_steps(column))
        return result

    def role_of(self, column: int, row: int) -> RowRole:
        return self.columns[column].rows[row]

    def regions(self) -> list[tuple[int, int]]:
        """所有区域坐标（按列、行顺序）"""
        return [
            (col, row)
            for col, column in enumerate(self.columns)
            for row in range(len(column.rows))
        ]


def plan(column_count: int, rows_per_column: int) -> LayoutPlan:
    """生成布局规划

    Args:
        column_count: 列数（工具数）
        rows_per_column: 每列行数（1 个主 pane + N-1 个 shell pane）
    """
    if column_count < 1:
        raise ValueError(f"列数必须 >= 1: {column_count}")
    if rows_per_column < 1:
        raise ValueError(f"每列行数必须 >= 1: {rows_per_column}")

    rows = (RowRole.PRIMARY,) + (RowRole.UTILITY,) * (rows_per_column - 1)
    return LayoutPlan(columns=tuple(ColumnPlan(rows=rows) for _ in range(column_count)))
