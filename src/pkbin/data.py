from __future__ import annotations

from dataclasses import dataclass, field
from functools import lru_cache

# Generation I identifiers are 1-based indexes into these tables; 0 means "none".

GEN1_SPECIES: tuple[str, ...] = (
    "Bulbasaur", "Ivysaur", "Venusaur", "Charmander", "Charmeleon", "Charizard",
    "Squirtle", "Wartortle", "Blastoise", "Caterpie", "Metapod", "Butterfree",
    "Weedle", "Kakuna", "Beedrill", "Pidgey", "Pidgeotto", "Pidgeot",
    "Rattata", "Raticate", "Spearow", "Fearow", "Ekans", "Arbok",
    "Pikachu", "Raichu", "Sandshrew", "Sandslash", "Nidoran-F", "Nidorina",
    "Nidoqueen", "Nidoran-M", "Nidorino", "Nidoking", "Clefairy", "Clefable",
    "Vulpix", "Ninetales", "Jigglypuff", "Wigglytuff", "Zubat", "Golbat",
    "Oddish", "Gloom", "Vileplume", "Paras", "Parasect", "Venonat",
    "Venomoth", "Diglett", "Dugtrio", "Meowth", "Persian", "Psyduck",
    "Golduck", "Mankey", "Primeape", "Growlithe", "Arcanine", "Poliwag",
    "Poliwhirl", "Poliwrath", "Abra", "Kadabra", "Alakazam", "Machop",
    "Machoke", "Machamp", "Bellsprout", "Weepinbell", "Victreebel", "Tentacool",
    "Tentacruel", "Geodude", "Graveler", "Golem", "Ponyta", "Rapidash",
    "Slowpoke", "Slowbro", "Magnemite", "Magneton", "Farfetch’d", "Doduo",
    "Dodrio", "Seel", "Dewgong", "Grimer", "Muk", "Shellder",
    "Cloyster", "Gastly", "Haunter", "Gengar", "Onix", "Drowzee",
    "Hypno", "Krabby", "Kingler", "Voltorb", "Electrode", "Exeggcute",
    "Exeggutor", "Cubone", "Marowak", "Hitmonlee", "Hitmonchan", "Lickitung",
    "Koffing", "Weezing", "Rhyhorn", "Rhydon", "Chansey", "Tangela",
    "Kangaskhan", "Horsea", "Seadra", "Goldeen", "Seaking", "Staryu",
    "Starmie", "Mr. Mime", "Scyther", "Jynx", "Electabuzz", "Magmar",
    "Pinsir", "Tauros", "Magikarp", "Gyarados", "Lapras", "Ditto",
    "Eevee", "Vaporeon", "Jolteon", "Flareon", "Porygon", "Omanyte",
    "Omastar", "Kabuto", "Kabutops", "Aerodactyl", "Snorlax", "Articuno",
    "Zapdos", "Moltres", "Dratini", "Dragonair", "Dragonite", "Mewtwo",
    "Mew",
)

GEN1_MOVES: tuple[str, ...] = (
    "Pound", "Karate Chop", "Double Slap", "Comet Punch", "Mega Punch", "Pay Day",
    "Fire Punch", "Ice Punch", "Thunder Punch", "Scratch", "Vise Grip", "Guillotine",
    "Razor Wind", "Swords Dance", "Cut", "Gust", "Wing Attack", "Whirlwind",
    "Fly", "Bind", "Slam", "Vine Whip", "Stomp", "Double Kick",
    "Mega Kick", "Jump Kick", "Rolling Kick", "Sand Attack", "Headbutt", "Horn Attack",
    "Fury Attack", "Horn Drill", "Tackle", "Body Slam", "Wrap", "Take Down",
    "Thrash", "Double-Edge", "Tail Whip", "Poison Sting", "Twineedle", "Pin Missile",
    "Leer", "Bite", "Growl", "Roar", "Sing", "Supersonic",
    "Sonic Boom", "Disable", "Acid", "Ember", "Flamethrower", "Mist",
    "Water Gun", "Hydro Pump", "Surf", "Ice Beam", "Blizzard", "Psybeam",
    "Bubble Beam", "Aurora Beam", "Hyper Beam", "Peck", "Drill Peck", "Submission",
    "Low Kick", "Counter", "Seismic Toss", "Strength", "Absorb", "Mega Drain",
    "Leech Seed", "Growth", "Razor Leaf", "Solar Beam", "Poison Powder", "Stun Spore",
    "Sleep Powder", "Petal Dance", "String Shot", "Dragon Rage", "Fire Spin", "Thunder Shock",
    "Thunderbolt", "Thunder Wave", "Thunder", "Rock Throw", "Earthquake", "Fissure",
    "Dig", "Toxic", "Confusion", "Psychic", "Hypnosis", "Meditate",
    "Agility", "Quick Attack", "Rage", "Teleport", "Night Shade", "Mimic",
    "Screech", "Double Team", "Recover", "Harden", "Minimize", "Smokescreen",
    "Confuse Ray", "Withdraw", "Defense Curl", "Barrier", "Light Screen", "Haze",
    "Reflect", "Focus Energy", "Bide", "Metronome", "Mirror Move", "Self-Destruct",
    "Egg Bomb", "Lick", "Smog", "Sludge", "Bone Club", "Fire Blast",
    "Waterfall", "Clamp", "Swift", "Skull Bash", "Spike Cannon", "Constrict",
    "Amnesia", "Kinesis", "Soft-Boiled", "High Jump Kick", "Glare", "Dream Eater",
    "Poison Gas", "Barrage", "Leech Life", "Lovely Kiss", "Sky Attack", "Transform",
    "Bubble", "Dizzy Punch", "Spore", "Flash", "Psywave", "Splash",
    "Acid Armor", "Crabhammer", "Explosion", "Fury Swipes", "Bonemerang", "Rest",
    "Rock Slide", "Hyper Fang", "Sharpen", "Conversion", "Tri Attack", "Super Fang",
    "Slash", "Substitute", "Struggle",
)

# Types are 0-based (they are packed as nibbles, so there is no "none" slot).
GEN1_TYPES: tuple[str, ...] = (
    "Normal", "Fighting", "Flying", "Poison", "Ground", "Rock", "Bug", "Ghost",
    "Fire", "Water", "Grass", "Electric", "Psychic", "Ice", "Dragon",
)


class UnknownIdError(KeyError):
    pass


def to_id(name: str) -> str:
    return "".join(ch for ch in str(name).lower() if ch.isalnum())


@dataclass(frozen=True, slots=True)
class Lookup:
    """Maps the engine's numeric identifiers to display names for one generation."""

    gen: int
    species_names: tuple[str, ...]
    move_names: tuple[str, ...]
    type_names: tuple[str, ...]
    _species_ids: dict[str, int] = field(default_factory=dict, repr=False, compare=False)
    _move_ids: dict[str, int] = field(default_factory=dict, repr=False, compare=False)

    def __post_init__(self) -> None:
        self._species_ids.update({to_id(name): idx + 1 for idx, name in enumerate(self.species_names)})
        self._move_ids.update({to_id(name): idx + 1 for idx, name in enumerate(self.move_names)})

    def species(self, num: int) -> str:
        if not 1 <= int(num) <= len(self.species_names):
            raise UnknownIdError(f"unknown gen{self.gen} species id: {num}")
        return self.species_names[int(num) - 1]

    def move(self, num: int) -> str:
        if not 1 <= int(num) <= len(self.move_names):
            raise UnknownIdError(f"unknown gen{self.gen} move id: {num}")
        return self.move_names[int(num) - 1]

    def type(self, num: int) -> str:
        if not 0 <= int(num) < len(self.type_names):
            raise UnknownIdError(f"unknown gen{self.gen} type id: {num}")
        return self.type_names[int(num)]

    def species_id(self, name: str) -> int:
        try:
            return self._species_ids[to_id(name)]
        except KeyError:
            raise UnknownIdError(f"unknown gen{self.gen} species: {name!r}") from None

    def move_id(self, name: str) -> int:
        try:
            return self._move_ids[to_id(name)]
        except KeyError:
            raise UnknownIdError(f"unknown gen{self.gen} move: {name!r}") from None


@lru_cache(maxsize=None)
def lookup(gen: int) -> Lookup:
    if int(gen) == 1:
        return Lookup(gen=1, species_names=GEN1_SPECIES, move_names=GEN1_MOVES, type_names=GEN1_TYPES)
    raise ValueError(f"unsupported gen: {gen}")
