"""
Builds the SURPASS force field from the text of a weights file, e.g.::

  # name                weight  arguments
  SurpassR13            1.0     -
  SurpassR14            1.0     -
  SurpassR15            1.0     -
  SurpassHelixStiffness 0.5
  SurpassContactEnergy  1.0     5.0 -1.0 0.5
"""

from typing import Callable, Dict, List, Optional, Union

from surpass.config import ForceFieldConfig, parse_force_field_config
from surpass.forcefield.base import ByResidueEnergy
from surpass.forcefield.hydrogen_bond import SurpassHydrogenBond
from surpass.forcefield.local import SurpassA13, SurpassR13, SurpassR14, SurpassR15, local_term_parameters
from surpass.forcefield.surpass_terms import SurpassCentrosymmetric, SurpassContactEnergy, SurpassHelixStiffness, SurpassLocalRepulsion
from surpass.forcefield.total import TotalEnergyByResidue
from surpass.log import logger
from surpass.systems import SurpassModel

LOCAL_TERMS = {"SurpassR13": SurpassR13, "SurpassR14": SurpassR14, "SurpassR15": SurpassR15, "SurpassA13": SurpassA13}

# older weight files use these spellings
TERM_ALIASES = {
  "SurpassHelixStifnessEnergy": "SurpassHelixStiffness",
  "SurpassLocalRepulsionEnergy": "SurpassLocalRepulsion",
  "SurpassCentrosymetricEnergy": "SurpassCentrosymmetric",
}


### FUNCTIONS ###
def known_terms() -> List[str]:
  return sorted(list(LOCAL_TERMS) + ["SurpassHydrogenBond", "SurpassContactEnergy", "SurpassHelixStiffness", "SurpassLocalRepulsion", "SurpassCentrosymmetric"])


def create_surpass_energy(system: SurpassModel, config: Union[str, ForceFieldConfig], ss: Optional[str] = None) -> TotalEnergyByResidue:
  """
  -------------------------------------------------------
  Creates the total energy of a SURPASS system.
  Every line of the config names a term, its weight and the
  arguments passed to its constructor. A single hydrogen bond
  term is shared by all the terms that need beta sheets.
  -------------------------------------------------------
  Parameters:
    system: The scored system (SurpassModel)
    config: Text of a weights file or a config with substitutions (str|ForceFieldConfig)
    ss....: Bead secondary structure used to select local potentials; the model's own by default (str)
  Returns:
    energy: The weighted sum of all the terms (TotalEnergyByResidue)
  Raises:
    ValueError: when the config names an unknown term
  """
  text = config.substitute() if isinstance(config, ForceFieldConfig) else config
  out = TotalEnergyByResidue()
  shared: Dict[str, ByResidueEnergy] = {}

  def hydrogen_bond() -> SurpassHydrogenBond:
    if "hb" not in shared:
      shared["hb"] = SurpassHydrogenBond(system)
    return shared["hb"]

  builders: Dict[str, Callable[[List[str]], ByResidueEnergy]] = {
    "SurpassHydrogenBond": lambda args: hydrogen_bond(),
    "SurpassContactEnergy": lambda args: SurpassContactEnergy.from_parameters(system, args, hydrogen_bond=hydrogen_bond()),
    "SurpassHelixStiffness": lambda args: SurpassHelixStiffness(system),
    "SurpassLocalRepulsion": lambda args: SurpassLocalRepulsion(system),
    "SurpassCentrosymmetric": lambda args: SurpassCentrosymmetric(system),
  }
  for term_name, cls in LOCAL_TERMS.items():
    builders[term_name] = lambda args, cls=cls: cls(system, *local_term_parameters(args), ss=ss)

  for term_name, factor, args in parse_force_field_config(text):
    key = TERM_ALIASES.get(term_name, term_name)
    if key not in builders:
      logger.error(f"Unknown energy term: {term_name}")
      raise ValueError(f"Unknown energy term: {term_name}; known terms: {' '.join(known_terms())}")
    logger.info(f"Creating {key} energy function with weight {factor}")
    logger.debug(f"{len(args)} arguments passed to its constructor: {' '.join(args)}")
    out.add_component(builders[key](args), factor)
  return out
