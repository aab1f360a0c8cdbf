"""
Weighted sum of energy terms, decomposable the same way as its components.
"""

from typing import List

from surpass.forcefield.base import ByResidueEnergy
from surpass.log import logger


### CLASSES ###
class TotalEnergyByResidue(ByResidueEnergy):
  """
  -------------------------------------------------------
  A named linear combination of energy terms. Every ``calculate*``
  method returns ``sum_k factor_k * component_k.calculate*``. The
  class also formats the components as columns of an energy table.
  -------------------------------------------------------
  Parameters:
    min_width: Narrowest column of the energy table (int)
    precision: Number of decimal places printed (int)
  """

  name = "TotalEnergyByResidue"

  def __init__(self, min_width: int = 7, precision: int = 2):
    self.components: List[ByResidueEnergy] = []
    self.factors: List[float] = []
    self.column_widths: List[int] = []
    self.min_width = min_width
    self.precision = precision

  def __repr__(self):
    terms = ", ".join(f"{f} * {c.name}" for c, f in zip(self.components, self.factors))
    return f"<TotalEnergyByResidue: {terms}>"

  def __len__(self):
    return len(self.components)

  def add_component(self, component: ByResidueEnergy, factor: float):
    self.components.append(component)
    self.factors.append(float(factor))
    self.column_widths.append(max(self.min_width, len(component.name)))
    logger.debug(f"Energy component {component.name} added with weight {factor}")

  def count_components(self) -> int:
    return len(self.components)

  def get_component(self, name: str) -> ByResidueEnergy:
    for c in self.components:
      if c.name == name:
        return c
    raise KeyError(f"No energy component named {name}; known components: {' '.join(c.name for c in self.components)}")

  def calculate_component(self, i: int) -> float:
    """Unweighted energy of the i-th component."""
    return self.components[i].calculate()

  def calculate_by_residue(self, which_residue: int) -> float:
    en = 0.0
    for c, f in zip(self.components, self.factors):
      en += c.calculate_by_residue(which_residue) * f
    return en

  def calculate_by_chunk(self, chunk_from: int, chunk_to: int) -> float:
    en = 0.0
    for c, f in zip(self.components, self.factors):
      en += c.calculate_by_chunk(chunk_from, chunk_to) * f
    return en

  def calculate(self) -> float:
    en = 0.0
    for c, f in zip(self.components, self.factors):
      en += c.calculate() * f
    return en

  def header_string(self) -> str:
    cols = [f"{c.name:>{w}}" for c, w in zip(self.components, self.column_widths)]
    cols.append(f"{self.name:>{len(self.name)}}")
    return " ".join(cols)

  def row_string(self) -> str:
    """Unweighted components followed by the weighted total, aligned with :obj:`header_string`."""
    total = 0.0
    cols = []
    for i, w in enumerate(self.column_widths):
      e = self.calculate_component(i)
      cols.append(f"{e:{w}.{self.precision}f}")
      total += e * self.factors[i]
    cols.append(f"{total:{len(self.name)}.{self.precision}f}")
    return " ".join(cols)
