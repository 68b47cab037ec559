"""
NeuroNote Clinical Lexicon
==========================

Fixed vocabularies for neurosurgical notes:

- Clinical abbreviations expanded by the normalizer
- Synonym groups (canonical name -> surface forms) for medications,
  procedures and complications; the deduplicator compares canonical names
- Complication categories, diagnosis and disposition vocabularies

All tables are read-only module constants.
"""

import re
from typing import Dict, List, Optional, Tuple

from src.shared.enums import FieldType


# =============================================================================
# CLINICAL ABBREVIATIONS (case-sensitive, whole token)
# =============================================================================

CLINICAL_ABBREVIATIONS: Dict[str, str] = {
    # Antithrombotics
    "ASA": "aspirin",
    "DAPT": "dual antiplatelet therapy",
    "Plavix": "clopidogrel",
    "Coumadin": "warfarin",
    "Eliquis": "apixaban",
    "Xarelto": "rivaroxaban",
    "Brilinta": "ticagrelor",
    "SQH": "subcutaneous heparin",
    "LMWH": "low molecular weight heparin",
    "Lovenox": "enoxaparin",

    # Brand names
    "Keppra": "levetiracetam",
    "Dilantin": "phenytoin",
    "Decadron": "dexamethasone",
    "Protonix": "pantoprazole",
    "Tylenol": "acetaminophen",
    "Zofran": "ondansetron",

    # Vascular / SAH
    "SAH": "subarachnoid hemorrhage",
    "aSAH": "aneurysmal subarachnoid hemorrhage",
    "ICH": "intracerebral hemorrhage",
    "IVH": "intraventricular hemorrhage",
    "SDH": "subdural hematoma",
    "cSDH": "chronic subdural hematoma",
    "EDH": "epidural hematoma",
    "AVM": "arteriovenous malformation",
    "DCI": "delayed cerebral ischemia",
    "TCD": "transcranial Doppler",
    "DSA": "digital subtraction angiography",
    "CTA": "CT angiography",
    "MCA": "middle cerebral artery",
    "ACA": "anterior cerebral artery",
    "ICA": "internal carotid artery",
    "ACoA": "anterior communicating artery",
    "PCoA": "posterior communicating artery",
    "HH": "Hunt and Hess",

    # Devices and procedures
    "EVD": "external ventricular drain",
    "LD": "lumbar drain",
    "LP": "lumbar puncture",
    "VPS": "ventriculoperitoneal shunt",
    "ETV": "endoscopic third ventriculostomy",
    "ACDF": "anterior cervical discectomy and fusion",
    "TLIF": "transforaminal lumbar interbody fusion",
    "PEG": "percutaneous endoscopic gastrostomy",
    "GTR": "gross total resection",
    "STR": "subtotal resection",
    "SRS": "stereotactic radiosurgery",
    "OR": "operating room",

    # Tumor
    "GBM": "glioblastoma",
    "LGG": "low-grade glioma",
    "HGG": "high-grade glioma",
    "TMZ": "temozolomide",
    "XRT": "radiation therapy",

    # Neuro / general
    "TBI": "traumatic brain injury",
    "NPH": "normal pressure hydrocephalus",
    "ICP": "intracranial pressure",
    "GCS": "Glasgow Coma Scale",
    "KPS": "Karnofsky Performance Status",
    "mRS": "modified Rankin Scale",
    "DVT": "deep vein thrombosis",
    "PE": "pulmonary embolism",
    "UTI": "urinary tract infection",
    "SIADH": "syndrome of inappropriate antidiuretic hormone",
    "CSW": "cerebral salt wasting",
    "CSF": "cerebrospinal fluid",
    "HTN": "hypertension",
    "DM": "diabetes mellitus",
    "CAD": "coronary artery disease",
    "AFib": "atrial fibrillation",

    # Timeline and shorthand
    "POD": "post-operative day",
    "HD": "hospital day",
    "DOA": "date of admission",
    "DOS": "date of surgery",
    "s/p": "status post",
    "h/o": "history of",
    "c/o": "complains of",
    "f/u": "follow-up",
    "w/": "with",
    "w/o": "without",
    "pt": "patient",
    "yo": "year-old",
    "y/o": "year-old",

    # Dispositions
    "SNF": "skilled nursing facility",
    "IRF": "inpatient rehabilitation facility",
    "LTACH": "long-term acute care hospital",
    "PT": "physical therapy",
    "OT": "occupational therapy",

    # Frequencies
    "BID": "twice daily",
    "TID": "three times daily",
    "QID": "four times daily",
    "QHS": "at bedtime",
    "PRN": "as needed",
    "PO": "by mouth",
    "IV": "intravenous",
}


# =============================================================================
# SYNONYM GROUPS (canonical -> surface forms, lower case)
# =============================================================================

MEDICATION_SYNONYMS: Dict[str, List[str]] = {
    "aspirin": ["aspirin", "asa", "acetylsalicylic acid", "ecotrin"],
    "clopidogrel": ["clopidogrel", "plavix"],
    "ticagrelor": ["ticagrelor", "brilinta"],
    "warfarin": ["warfarin", "coumadin", "jantoven"],
    "apixaban": ["apixaban", "eliquis"],
    "rivaroxaban": ["rivaroxaban", "xarelto"],
    "heparin": ["heparin", "subcutaneous heparin", "sqh", "heparin sq"],
    "enoxaparin": ["enoxaparin", "lovenox", "lmwh"],
    "levetiracetam": ["levetiracetam", "keppra", "lev"],
    "phenytoin": ["phenytoin", "dilantin", "fosphenytoin"],
    "lacosamide": ["lacosamide", "vimpat"],
    "valproate": ["valproate", "valproic acid", "depakote"],
    "dexamethasone": ["dexamethasone", "decadron", "dex"],
    "mannitol": ["mannitol"],
    "hypertonic saline": ["hypertonic saline", "3% saline", "23.4% saline"],
    "nimodipine": ["nimodipine", "nimotop"],
    "nicardipine": ["nicardipine", "cardene"],
    "labetalol": ["labetalol", "trandate"],
    "metoprolol": ["metoprolol", "lopressor", "toprol"],
    "amlodipine": ["amlodipine", "norvasc"],
    "lisinopril": ["lisinopril", "zestril"],
    "atorvastatin": ["atorvastatin", "lipitor"],
    "pantoprazole": ["pantoprazole", "protonix"],
    "famotidine": ["famotidine", "pepcid"],
    "acetaminophen": ["acetaminophen", "tylenol", "apap", "paracetamol"],
    "oxycodone": ["oxycodone", "roxicodone", "percocet"],
    "hydromorphone": ["hydromorphone", "dilaudid"],
    "gabapentin": ["gabapentin", "neurontin"],
    "cyclobenzaprine": ["cyclobenzaprine", "flexeril"],
    "docusate": ["docusate", "colace"],
    "senna": ["senna", "senokot"],
    "ondansetron": ["ondansetron", "zofran"],
    "insulin": ["insulin", "insulin glargine", "lantus", "insulin lispro"],
    "metformin": ["metformin", "glucophage"],
    "cefazolin": ["cefazolin", "ancef"],
    "vancomycin": ["vancomycin", "vanc"],
    "ceftriaxone": ["ceftriaxone", "rocephin"],
    "temozolomide": ["temozolomide", "temodar", "tmz"],
    "fludrocortisone": ["fludrocortisone", "florinef"],
    "sodium chloride tablets": ["sodium chloride tablets", "salt tablets", "nacl tablets"],
}

PROCEDURE_SYNONYMS: Dict[str, List[str]] = {
    "aneurysm coiling": ["coiling", "coil embolization", "endovascular coiling", "aneurysm coiling"],
    "aneurysm clipping": ["clipping", "aneurysm clipping", "microsurgical clipping", "surgical clipping", "clip ligation"],
    "craniotomy": ["craniotomy", "pterional craniotomy", "frontal craniotomy", "suboccipital craniotomy", "awake craniotomy"],
    "craniectomy": ["craniectomy", "decompressive craniectomy", "hemicraniectomy", "suboccipital decompression"],
    "cranioplasty": ["cranioplasty", "bone flap replacement"],
    "EVD placement": ["evd", "evd placement", "external ventricular drain", "external ventricular drain placement", "ventriculostomy", "evd insertion"],
    "lumbar drain": ["lumbar drain", "lumbar drain placement"],
    "lumbar puncture": ["lumbar puncture", "lp"],
    "VP shunt": ["vp shunt", "ventriculoperitoneal shunt", "vps", "shunt placement", "shunt revision"],
    "endoscopic third ventriculostomy": ["endoscopic third ventriculostomy", "etv"],
    "tumor resection": ["tumor resection", "gross total resection", "subtotal resection", "resection", "debulking"],
    "biopsy": ["biopsy", "stereotactic biopsy", "needle biopsy", "brain biopsy"],
    "burr hole evacuation": ["burr hole", "burr holes", "burr hole evacuation", "burr hole drainage"],
    "laminectomy": ["laminectomy", "decompressive laminectomy", "hemilaminectomy"],
    "ACDF": ["acdf", "anterior cervical discectomy and fusion"],
    "spinal fusion": ["spinal fusion", "posterior spinal fusion", "tlif", "transforaminal lumbar interbody fusion", "fusion"],
    "discectomy": ["discectomy", "microdiscectomy"],
    "angiography": ["angiogram", "angiography", "cerebral angiogram", "cerebral angiography", "dsa", "digital subtraction angiography"],
    "embolization": ["embolization", "mma embolization", "endovascular embolization"],
    "tracheostomy": ["tracheostomy", "trach"],
    "PEG placement": ["peg", "peg placement", "percutaneous endoscopic gastrostomy"],
    "stereotactic radiosurgery": ["stereotactic radiosurgery", "srs", "gamma knife"],
}

# canonical -> (category, surface forms)
COMPLICATION_SYNONYMS: Dict[str, Tuple[str, List[str]]] = {
    "vasospasm": ("vascular", ["vasospasm", "cerebral vasospasm", "delayed cerebral ischemia", "dci"]),
    "rebleeding": ("vascular", ["rebleed", "rebleeding", "re-rupture", "hematoma expansion"]),
    "stroke": ("vascular", ["stroke", "infarct", "infarction", "ischemic stroke", "cva"]),
    "deep vein thrombosis": ("vascular", ["dvt", "deep vein thrombosis"]),
    "pulmonary embolism": ("respiratory", ["pulmonary embolism", "pe"]),
    "hydrocephalus": ("neurological", ["hydrocephalus", "ventriculomegaly"]),
    "seizure": ("neurological", ["seizure", "seizures", "status epilepticus"]),
    "cerebral edema": ("neurological", ["cerebral edema", "brain swelling", "edema"]),
    "headache": ("neurological", ["headache", "headaches"]),
    "delirium": ("neurological", ["delirium", "confusion", "encephalopathy"]),
    "new deficit": ("neurological", ["new deficit", "new weakness", "hemiparesis", "aphasia"]),
    "meningitis": ("infectious", ["meningitis", "ventriculitis"]),
    "wound infection": ("infectious", ["wound infection", "surgical site infection", "wound dehiscence"]),
    "pneumonia": ("infectious", ["pneumonia", "aspiration pneumonia", "vap"]),
    "urinary tract infection": ("infectious", ["uti", "urinary tract infection"]),
    "fever": ("infectious", ["fever", "fevers", "febrile"]),
    "hyponatremia": ("metabolic", ["hyponatremia", "siadh", "cerebral salt wasting", "csw"]),
    "hypernatremia": ("metabolic", ["hypernatremia"]),
    "CSF leak": ("surgical", ["csf leak", "cerebrospinal fluid leak", "pseudomeningocele"]),
    "postoperative hematoma": ("surgical", ["postoperative hematoma", "post-operative hematoma", "postoperative subdural hematoma", "postoperative epidural hematoma", "recurrent hematoma"]),
    "respiratory failure": ("respiratory", ["respiratory failure", "reintubation", "hypoxia"]),
    "atrial fibrillation": ("cardiac", ["atrial fibrillation", "afib", "a-fib"]),
    "myocardial infarction": ("cardiac", ["myocardial infarction", "nstemi", "stemi"]),
}

DIAGNOSIS_TERMS: Dict[str, List[str]] = {
    "subarachnoid hemorrhage": ["subarachnoid hemorrhage", "sah", "asah", "aneurysmal subarachnoid hemorrhage"],
    "intracranial aneurysm": ["aneurysm", "intracranial aneurysm", "acom aneurysm", "pcom aneurysm", "mca aneurysm"],
    "intracerebral hemorrhage": ["intracerebral hemorrhage", "ich", "intraparenchymal hemorrhage"],
    "subdural hematoma": ["subdural hematoma", "sdh", "chronic subdural hematoma", "csdh"],
    "epidural hematoma": ["epidural hematoma", "edh"],
    "traumatic brain injury": ["traumatic brain injury", "tbi"],
    "glioblastoma": ["glioblastoma", "gbm", "glioblastoma multiforme"],
    "glioma": ["glioma", "astrocytoma", "oligodendroglioma", "low-grade glioma", "high-grade glioma"],
    "meningioma": ["meningioma"],
    "brain metastasis": ["brain metastasis", "brain metastases", "metastatic disease to the brain"],
    "pituitary adenoma": ["pituitary adenoma", "macroadenoma"],
    "hydrocephalus": ["normal pressure hydrocephalus", "nph", "obstructive hydrocephalus"],
    "arteriovenous malformation": ["arteriovenous malformation", "avm"],
    "cervical myelopathy": ["cervical myelopathy", "cervical stenosis"],
    "lumbar stenosis": ["lumbar stenosis", "spinal stenosis", "lumbar spinal stenosis"],
    "disc herniation": ["disc herniation", "herniated disc", "herniated nucleus pulposus"],
    "spinal cord injury": ["spinal cord injury", "sci"],
    "trigeminal neuralgia": ["trigeminal neuralgia"],
}

# canonical -> surface forms, most specific first
DISPOSITION_TERMS: Dict[str, List[str]] = {
    "home with services": ["home with services", "home with home health", "home with vna", "home health"],
    "acute rehabilitation": ["acute rehab", "acute rehabilitation", "inpatient rehabilitation", "inpatient rehab", "irf"],
    "skilled nursing facility": ["skilled nursing facility", "snf", "subacute rehab", "nursing home"],
    "long-term acute care": ["ltach", "long-term acute care", "long term acute care"],
    "hospice": ["hospice"],
    "deceased": ["expired", "deceased", "passed away"],
    "home": ["home", "home with family", "home independently"],
}


# =============================================================================
# LOOKUP
# =============================================================================

def _build_index(groups: Dict[str, List[str]]) -> Dict[str, str]:
    index: Dict[str, str] = {}
    for canonical, forms in groups.items():
        index[canonical.lower()] = canonical
        for form in forms:
            index.setdefault(form.lower(), canonical)
    return index


_MEDICATION_INDEX = _build_index(MEDICATION_SYNONYMS)
_PROCEDURE_INDEX = _build_index(PROCEDURE_SYNONYMS)
_COMPLICATION_INDEX = _build_index({k: v[1] for k, v in COMPLICATION_SYNONYMS.items()})
_DIAGNOSIS_INDEX = _build_index(DIAGNOSIS_TERMS)
_DISPOSITION_INDEX = _build_index(DISPOSITION_TERMS)

_INDEXES: Dict[FieldType, Dict[str, str]] = {
    FieldType.MEDICATION: _MEDICATION_INDEX,
    FieldType.PROCEDURE: _PROCEDURE_INDEX,
    FieldType.COMPLICATION: _COMPLICATION_INDEX,
    FieldType.DIAGNOSIS: _DIAGNOSIS_INDEX,
    FieldType.DISCHARGE_DISPOSITION: _DISPOSITION_INDEX,
}


def canonical_name(name: str, field_type: FieldType) -> str:
    """
    Map a surface form to its synonym-group canonical name.

    Exact match first, then the longest surface form contained in ``name``
    as a whole phrase. Unknown names come back lower-cased and trimmed.
    """
    key = re.sub(r"\s+", " ", name.lower()).strip()
    index = _INDEXES.get(field_type)
    if not index:
        return key
    if key in index:
        return index[key]

    best: Optional[str] = None
    best_len = 0
    for form, canonical in index.items():
        if len(form) > best_len and re.search(rf"(?<![\w-]){re.escape(form)}(?![\w-])", key):
            best, best_len = canonical, len(form)
    return best or key


def complication_category(canonical: str) -> str:
    entry = COMPLICATION_SYNONYMS.get(canonical)
    return entry[0] if entry else "other"


def surface_forms(field_type: FieldType) -> Dict[str, str]:
    """All surface forms for a field type mapped to their canonical names."""
    return dict(_INDEXES.get(field_type, {}))
