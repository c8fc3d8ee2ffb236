from __future__ import annotations

from dataclasses import dataclass


# Bump when archetype content changes so logged runs can be traced to a catalog.
CATALOG_VERSION = "1"

DISC_TYPES = ("D", "I", "S", "C")


@dataclass(frozen=True)
class DiscScores:
    D: int
    I: int  # noqa: E741 - DISC dimension name
    S: int
    C: int

    def as_dict(self) -> dict[str, int]:
        return {"D": self.D, "I": self.I, "S": self.S, "C": self.C}

    def total(self) -> int:
        return self.D + self.I + self.S + self.C


@dataclass(frozen=True)
class ClientArchetype:
    name: str
    base_email: str
    company: str
    disc_type: str
    scores: DiscScores


@dataclass(frozen=True)
class StaffArchetype:
    name: str
    base_email: str
    role: str
    disc_type: str
    scores: DiscScores


def _s(d: int, i: int, s: int, c: int) -> DiscScores:
    return DiscScores(D=d, I=i, S=s, C=c)


CLIENT_ARCHETYPES: tuple[ClientArchetype, ...] = (
    # Dominant
    ClientArchetype("Marcus Chen", "marcus.chen@techcorp.com", "TechCorp Industries", "D", _s(35, 20, 15, 18)),
    ClientArchetype("Victoria Stone", "v.stone@alphaventures.com", "Alpha Ventures", "D", _s(38, 18, 12, 20)),
    ClientArchetype("Derek Martinez", "derek.m@pinnaclegroup.com", "Pinnacle Group", "D", _s(36, 22, 10, 20)),
    ClientArchetype("Rebecca Foster", "rfoster@dynamicsolutions.com", "Dynamic Solutions", "D", _s(34, 19, 14, 21)),
    ClientArchetype("James Rodriguez", "j.rodriguez@apex.io", "Apex Innovations", "D", _s(37, 21, 11, 19)),
    # Influential
    ClientArchetype("Sophia Williams", "sophia@brightideas.co", "Bright Ideas Co", "I", _s(18, 36, 20, 14)),
    ClientArchetype("Tyler Anderson", "tyler.a@creativehub.com", "Creative Hub", "I", _s(20, 38, 18, 12)),
    ClientArchetype("Emma Thompson", "emma.t@socialsynergy.com", "Social Synergy", "I", _s(16, 35, 22, 15)),
    ClientArchetype("David Park", "dpark@innovateagency.com", "Innovate Agency", "I", _s(22, 34, 19, 13)),
    ClientArchetype("Isabella Garcia", "igarcia@sparknetwork.com", "Spark Network", "I", _s(19, 37, 21, 11)),
    ClientArchetype("Ryan Mitchell", "ryan@energybrands.com", "Energy Brands", "I", _s(17, 36, 23, 12)),
    # Steady
    ClientArchetype("Jennifer Lee", "j.lee@harmonyservices.com", "Harmony Services", "S", _s(14, 20, 36, 18)),
    ClientArchetype("Michael Brown", "mbrown@reliablepartners.com", "Reliable Partners", "S", _s(12, 18, 38, 20)),
    ClientArchetype("Amanda Wilson", "awilson@steadyrock.com", "Steady Rock Consulting", "S", _s(15, 22, 35, 16)),
    ClientArchetype("Christopher Davis", "c.davis@peaceful.io", "Peaceful Solutions", "S", _s(13, 19, 37, 19)),
    ClientArchetype("Sarah Martinez", "smartinez@supportive.com", "Supportive Systems", "S", _s(11, 21, 36, 20)),
    ClientArchetype("Daniel Taylor", "dtaylor@harmony.biz", "Harmony Health", "S", _s(16, 20, 34, 18)),
    # Conscientious
    ClientArchetype("Elizabeth Chen", "e.chen@precisiondata.com", "Precision Data Corp", "C", _s(16, 12, 20, 40)),
    ClientArchetype("Robert Anderson", "randerson@analytics.pro", "Analytics Pro", "C", _s(18, 14, 18, 38)),
    ClientArchetype("Michelle White", "mwhite@qualityassurance.com", "Quality Assurance Inc", "C", _s(15, 13, 19, 41)),
    ClientArchetype("Kevin Thompson", "kthompson@systematic.io", "Systematic Solutions", "C", _s(17, 11, 21, 39)),
    ClientArchetype("Laura Johnson", "ljohnson@detailmasters.com", "Detail Masters", "C", _s(14, 15, 20, 39)),
    ClientArchetype("Brian Miller", "bmiller@accurateresults.com", "Accurate Results LLC", "C", _s(19, 12, 18, 39)),
    # Mixed profiles
    ClientArchetype("Ashley Roberts", "aroberts@balanced.biz", "Balanced Business Group", "I", _s(25, 28, 22, 13)),
    ClientArchetype("Justin Harris", "jharris@versatile.co", "Versatile Ventures", "D", _s(30, 24, 16, 18)),
)


STAFF_ARCHETYPES: tuple[StaffArchetype, ...] = (
    StaffArchetype("Nathan Brooks", "nathan.brooks@northstar-agency.com", "Account Director", "D", _s(36, 20, 14, 18)),
    StaffArchetype("Priya Raman", "priya.raman@northstar-agency.com", "Head of Growth", "D", _s(34, 22, 13, 19)),
    StaffArchetype("Caleb Whitaker", "caleb.whitaker@northstar-agency.com", "Sales Lead", "D", _s(38, 17, 15, 18)),
    StaffArchetype("Monica Alvarez", "monica.alvarez@northstar-agency.com", "Operations Director", "D", _s(35, 21, 12, 20)),
    StaffArchetype("Grant Holloway", "grant.holloway@northstar-agency.com", "New Business Manager", "D", _s(33, 23, 16, 16)),
    StaffArchetype("Tessa Lindqvist", "tessa.lindqvist@northstar-agency.com", "Managing Partner", "D", _s(37, 19, 13, 19)),
    StaffArchetype("Jordan Ellis", "jordan.ellis@northstar-agency.com", "Client Success Manager", "I", _s(19, 37, 18, 14)),
    StaffArchetype("Maya Patel", "maya.patel@northstar-agency.com", "Brand Strategist", "I", _s(21, 35, 20, 12)),
    StaffArchetype("Leo Fitzgerald", "leo.fitzgerald@northstar-agency.com", "Partnerships Manager", "I", _s(17, 38, 19, 14)),
    StaffArchetype("Chloe Bennett", "chloe.bennett@northstar-agency.com", "Community Manager", "I", _s(20, 34, 21, 13)),
    StaffArchetype("Andre Carter", "andre.carter@northstar-agency.com", "Creative Director", "I", _s(18, 36, 22, 12)),
    StaffArchetype("Hannah Kim", "hannah.kim@northstar-agency.com", "Marketing Manager", "I", _s(22, 33, 20, 13)),
    StaffArchetype("Ethan Walsh", "ethan.walsh@northstar-agency.com", "Account Manager", "S", _s(13, 19, 37, 19)),
    StaffArchetype("Grace Okafor", "grace.okafor@northstar-agency.com", "Support Specialist", "S", _s(15, 21, 35, 17)),
    StaffArchetype("Samuel Reyes", "samuel.reyes@northstar-agency.com", "Project Coordinator", "S", _s(12, 20, 38, 18)),
    StaffArchetype("Lily Donovan", "lily.donovan@northstar-agency.com", "HR Partner", "S", _s(14, 18, 36, 20)),
    StaffArchetype("Owen Murphy", "owen.murphy@northstar-agency.com", "Customer Care Lead", "S", _s(16, 22, 34, 16)),
    StaffArchetype("Rosa Jimenez", "rosa.jimenez@northstar-agency.com", "Office Manager", "S", _s(11, 20, 37, 20)),
    StaffArchetype("Adrian Novak", "adrian.novak@northstar-agency.com", "Data Analyst", "C", _s(17, 12, 19, 40)),
    StaffArchetype("Fiona McLeod", "fiona.mcleod@northstar-agency.com", "Finance Controller", "C", _s(15, 14, 20, 39)),
    StaffArchetype("Henry Liu", "henry.liu@northstar-agency.com", "QA Lead", "C", _s(18, 11, 21, 38)),
    StaffArchetype("Natalie Schmidt", "natalie.schmidt@northstar-agency.com", "Compliance Officer", "C", _s(16, 13, 18, 41)),
    StaffArchetype("Victor Hughes", "victor.hughes@northstar-agency.com", "Solutions Architect", "C", _s(14, 15, 22, 37)),
    StaffArchetype("Zoe Sinclair", "zoe.sinclair@northstar-agency.com", "Research Lead", "C", _s(19, 13, 19, 37)),
    StaffArchetype("Marcus Bell", "marcus.bell@northstar-agency.com", "Team Lead", "D", _s(29, 27, 15, 17)),
)
