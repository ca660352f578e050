# In-memory data models - clinical episodes, user profiles, merge audit log
from typing import Dict, List, Optional, Tuple
from dataclasses import dataclass, field

# In-memory storage
episodes: List['Episode'] = []
profiles: Dict[str, 'Profile'] = {}
audit_logs: List['AuditLogEntry'] = []

@dataclass
class Profile:
    """Staff user profile (resolves clinic scope for the acting user)"""
    userId: str
    fullName: str
    email: str = ""
    clinicId: Optional[str] = None

@dataclass
class Episode:
    """One treatment episode tied to a patient (identity is name + DOB, not a key)"""
    episodeId: str
    clinicId: str
    patientName: str
    dateOfBirth: str  # YYYY-MM-DD
    region: str
    diagnosis: str = ""
    dateOfService: str = ""  # YYYY-MM-DD
    insurance: Optional[str] = None
    emergencyContact: Optional[str] = None
    emergencyPhone: Optional[str] = None
    referringPhysician: Optional[str] = None
    medications: Optional[str] = None
    medicalHistory: Optional[str] = None

@dataclass
class PatientIdentity:
    """Records sharing the exact (lower-cased name, DOB) key"""
    patientName: str
    dateOfBirth: str
    episodes: List[Episode] = field(default_factory=list)

    @property
    def key(self) -> Tuple[str, str]:
        return identity_key(self.patientName, self.dateOfBirth)

    @property
    def episodeCount(self) -> int:
        return len(self.episodes)

    @property
    def episodeIds(self) -> List[str]:
        return [ep.episodeId for ep in self.episodes]

@dataclass
class DuplicateGroup:
    """Identities judged to be the same real patient. Always >= 2 members."""
    members: List[PatientIdentity] = field(default_factory=list)

    @property
    def totalEpisodes(self) -> int:
        return sum(m.episodeCount for m in self.members)

    def find_member(self, patient_name: str, date_of_birth: str) -> Optional[PatientIdentity]:
        for member in self.members:
            if member.patientName == patient_name and member.dateOfBirth == date_of_birth:
                return member
        return None

@dataclass
class AuditLogEntry:
    """Write-once record of a merge action"""
    id: str
    action: str
    tableName: str
    recordId: str
    userId: str
    clinicId: Optional[str]
    createdAt: str  # ISO 8601, UTC
    oldData: Dict = field(default_factory=dict)
    newData: Dict = field(default_factory=dict)
    userAgent: Optional[str] = None
    ipAddress: Optional[str] = None

def identity_key(patient_name: str, date_of_birth: str) -> Tuple[str, str]:
    """Exact grouping key: lower-cased full name plus DOB string"""
    return (patient_name.lower(), date_of_birth)
