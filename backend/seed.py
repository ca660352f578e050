# Seed data - staff profiles and patient episodes with known duplicates
from models import Episode, Profile, audit_logs, episodes, profiles

def seed_data():
    """Initialize staff profiles and episodes (clears the audit log too)"""
    # Clear existing data
    profiles.clear()
    episodes.clear()
    audit_logs.clear()

    profiles["u-admin"] = Profile(userId="u-admin", fullName="Dana Admin", email="dana@clinic-a.test", clinicId="A")
    profiles["u-pt"] = Profile(userId="u-pt", fullName="Sam Therapist", email="sam@clinic-a.test", clinicId="A")
    profiles["u-other"] = Profile(userId="u-other", fullName="", email="lee@clinic-b.test", clinicId="B")

    # John Smith: two episodes under the correct spelling, one under a typo
    episodes.extend([
        Episode(
            episodeId="ep-js-1",
            clinicId="A",
            patientName="John Smith",
            dateOfBirth="1980-01-01",
            region="Lumbar",
            diagnosis="Low back pain",
            dateOfService="2024-03-12",
            insurance="Acme Health",
            referringPhysician="Dr. Patel",
        ),
        Episode(
            episodeId="ep-js-2",
            clinicId="A",
            patientName="John Smith",
            dateOfBirth="1980-01-01",
            region="Cervical",
            diagnosis="Neck pain",
            dateOfService="2023-09-02",
        ),
        Episode(
            episodeId="ep-js-3",
            clinicId="A",
            patientName="Jon Smith",
            dateOfBirth="1980-01-01",
            region="Shoulder",
            diagnosis="Rotator cuff tendinopathy",
            dateOfService="2024-06-20",
            medications="Ibuprofen",
        ),
    ])

    # Alice Jones: single identity, never a duplicate
    episodes.append(Episode(
        episodeId="ep-aj-1",
        clinicId="A",
        patientName="Alice Jones",
        dateOfBirth="1975-05-05",
        region="Knee",
        diagnosis="Patellofemoral pain",
        dateOfService="2024-01-15",
    ))

    # Bob Lee: same name, different DOB - two different people
    episodes.extend([
        Episode(
            episodeId="ep-bl-1",
            clinicId="A",
            patientName="Bob Lee",
            dateOfBirth="1990-03-03",
            region="Ankle",
            diagnosis="Lateral ankle sprain",
            dateOfService="2024-02-01",
        ),
        Episode(
            episodeId="ep-bl-2",
            clinicId="A",
            patientName="Bob Lee",
            dateOfBirth="1991-03-03",
            region="Hip",
            diagnosis="Hip OA",
            dateOfService="2024-04-10",
        ),
    ])

    # Maria Chen: one-letter typo at another clinic
    episodes.extend([
        Episode(
            episodeId="ep-mc-1",
            clinicId="B",
            patientName="Maria Chen",
            dateOfBirth="2000-07-20",
            region="Vestibular",
            diagnosis="BPPV",
            dateOfService="2024-05-05",
        ),
        Episode(
            episodeId="ep-mc-2",
            clinicId="B",
            patientName="Maria Chenn",
            dateOfBirth="2000-07-20",
            region="Neuro",
            diagnosis="Post-concussion syndrome",
            dateOfService="2024-05-19",
        ),
    ])

    print(f"Seed data initialized: {len(profiles)} profiles, {len(episodes)} episodes")

if __name__ == "__main__":
    seed_data()
