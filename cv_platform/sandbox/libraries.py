"""
Library Registry - the fixed whitelist of packages generated code may import.

Responsibilities:
- Map import specifiers to the browser globals the preview loads
- Know the exports of each whitelisted package (used to synthesize missing imports)
- Provide the resolution order for identifiers that were never imported
"""

from dataclasses import dataclass, field
from typing import Dict, FrozenSet, Iterable, List, Literal, Optional, Tuple


LibraryKind = Literal["runtime", "animation", "icons"]


# =============================================================================
# KNOWN EXPORTS
# =============================================================================

REACT_EXPORTS = frozenset({
    "Children", "Component", "Fragment", "StrictMode", "Suspense",
    "cloneElement", "createContext", "createElement", "createRef", "forwardRef",
    "isValidElement", "lazy", "memo", "startTransition",
    "useCallback", "useContext", "useDeferredValue", "useEffect", "useId",
    "useImperativeHandle", "useLayoutEffect", "useMemo", "useReducer",
    "useRef", "useState", "useTransition",
})

# Exports a component file may use in JSX without meaning "user component"
REACT_JSX_EXPORTS = frozenset({"Fragment", "StrictMode", "Suspense"})

FRAMER_MOTION_EXPORTS = frozenset({
    "AnimatePresence", "LayoutGroup", "MotionConfig", "animate", "motion",
    "stagger", "useAnimation", "useAnimationControls", "useInView",
    "useMotionTemplate", "useMotionValue", "useMotionValueEvent",
    "useReducedMotion", "useScroll", "useSpring", "useTransform", "useVelocity",
})

PHOSPHOR_ICONS = frozenset({
    "Airplane", "ArrowDown", "ArrowDownRight", "ArrowLeft", "ArrowRight",
    "ArrowSquareOut", "ArrowUp", "ArrowUpRight", "At", "BehanceLogo",
    "BookOpen", "Briefcase", "Buildings", "Calendar", "Camera", "CaretDown",
    "CaretLeft", "CaretRight", "CaretUp", "ChartLine", "ChatCircle", "Check",
    "CheckCircle", "Circle", "Clock", "Cloud", "Code", "CodepenLogo", "Coffee",
    "Copy", "Cpu", "Crown", "Cube", "Database", "Desktop", "DeviceMobile",
    "DiscordLogo", "Download", "DribbbleLogo", "Envelope", "EnvelopeSimple",
    "Eye", "FacebookLogo", "FigmaLogo", "File", "FilmSlate", "Fire", "Flask",
    "Folder", "GameController", "Gear", "GithubLogo", "Globe", "GlobeHemisphereWest",
    "GraduationCap", "Hammer", "Handshake", "Heart", "House", "Image",
    "Info", "InstagramLogo", "Laptop", "Layout", "Leaf", "Lightbulb",
    "Lightning", "Link", "LinkSimple", "LinkedinLogo", "List", "MagnifyingGlass",
    "MapPin", "MediumLogo", "Medal", "Microphone", "Minus", "Moon", "MusicNote",
    "PaintBrush", "Palette", "PaperPlaneRight", "PaperPlaneTilt", "Pause",
    "PenNib", "Pencil", "Phone", "Play", "Plus", "Quotes", "Rocket",
    "RocketLaunch", "Shield", "Sparkle", "Star", "Sun", "Target", "Terminal",
    "TiktokLogo", "Trophy", "TwitterLogo", "User", "Users", "VideoCamera",
    "Wrench", "X", "XLogo", "YoutubeLogo",
})

LUCIDE_ICONS = frozenset({
    "Activity", "Award", "ArrowDown", "ArrowLeft", "ArrowRight", "ArrowUp",
    "ArrowUpRight", "AtSign", "Book", "BookOpen", "Briefcase", "Calendar",
    "Camera", "Check", "CheckCircle", "ChevronDown", "ChevronLeft",
    "ChevronRight", "ChevronUp", "Circle", "Clock", "Cloud", "Code", "Code2",
    "Coffee", "Copy", "Cpu", "Database", "Download", "Dribbble", "ExternalLink",
    "Eye", "Facebook", "Figma", "FileText", "Github", "Globe", "GraduationCap",
    "Heart", "Home", "Image", "Info", "Instagram", "Laptop", "Layers",
    "Layout", "Lightbulb", "Link", "Link2", "Linkedin", "Loader2", "Mail",
    "MapPin", "Menu", "MessageCircle", "Mic", "Minus", "Monitor", "Moon",
    "Music", "Palette", "PenTool", "Phone", "Play", "Plus", "Quote", "Rocket",
    "Search", "Send", "Server", "Settings", "Share2", "Smartphone", "Sparkles",
    "Star", "Sun", "Target", "Terminal", "Trophy", "Twitter", "User", "Users",
    "Video", "Wrench", "X", "Youtube", "Zap",
})


# =============================================================================
# DATA CLASSES
# =============================================================================

@dataclass(frozen=True)
class LibraryEntry:
    """One whitelisted package."""
    module: str
    kind: LibraryKind
    global_name: Optional[str] = None  # browser global; None means always stubbed
    script_url: Optional[str] = None
    aliases: Tuple[str, ...] = ()
    exports: FrozenSet[str] = field(default_factory=frozenset)
    
    def specifiers(self) -> Tuple[str, ...]:
        return (self.module,) + self.aliases
    
    def to_runtime(self) -> Dict[str, Optional[str]]:
        return {"global": self.global_name, "kind": self.kind}


DEFAULT_ENTRIES: Tuple[LibraryEntry, ...] = (
    LibraryEntry(
        module="react",
        kind="runtime",
        global_name="React",
        script_url="https://unpkg.com/react@18.2.0/umd/react.production.min.js",
        exports=REACT_EXPORTS,
    ),
    LibraryEntry(
        module="react-dom",
        kind="runtime",
        global_name="ReactDOM",
        script_url="https://unpkg.com/react-dom@18.2.0/umd/react-dom.production.min.js",
        aliases=("react-dom/client",),
        exports=frozenset({"createPortal", "createRoot", "flushSync"}),
    ),
    LibraryEntry(
        module="framer-motion",
        kind="animation",
        global_name="Motion",
        script_url="https://unpkg.com/framer-motion@10.18.0/dist/framer-motion.js",
        exports=FRAMER_MOTION_EXPORTS,
    ),
    LibraryEntry(
        module="lucide-react",
        kind="icons",
        global_name="LucideReact",
        script_url="https://unpkg.com/lucide-react@0.263.1/dist/umd/lucide-react.min.js",
        exports=LUCIDE_ICONS,
    ),
    LibraryEntry(
        module="@phosphor-icons/react",
        kind="icons",
        aliases=("phosphor-react",),
        exports=PHOSPHOR_ICONS,
    ),
    LibraryEntry(
        module="react-icons",
        kind="icons",
        aliases=tuple(f"react-icons/{pack}" for pack in ("fa", "fa6", "fi", "hi", "hi2", "io5", "md", "si", "bs", "ri", "tb", "lu")),
    ),
)

# Package used when a missing icon import has to be synthesized
DEFAULT_ICON_MODULE = "@phosphor-icons/react"


# =============================================================================
# REGISTRY CLASS
# =============================================================================

class LibraryRegistry:
    """
    Lookup over the whitelisted libraries.
    
    Order matters: identifiers that were never imported are resolved against
    the entries in registration order.
    """
    
    def __init__(self, entries: Iterable[LibraryEntry] = DEFAULT_ENTRIES):
        self._entries: List[LibraryEntry] = list(entries)
        self._by_specifier: Dict[str, LibraryEntry] = {}
        for entry in self._entries:
            for specifier in entry.specifiers():
                self._by_specifier[specifier] = entry
    
    @property
    def entries(self) -> List[LibraryEntry]:
        return list(self._entries)
    
    def get(self, specifier: str) -> Optional[LibraryEntry]:
        """Get the entry for an import specifier (aliases included)."""
        return self._by_specifier.get(specifier)
    
    def is_whitelisted(self, specifier: str) -> bool:
        return specifier in self._by_specifier
    
    def is_icon_export(self, name: str) -> bool:
        return any(entry.kind == "icons" and name in entry.exports for entry in self._entries)
    
    def module_for_export(self, name: str, prefer: Iterable[str] = ()) -> Optional[str]:
        """
        Find the package a bare identifier most likely comes from.
        
        Args:
            name: Identifier used in the source
            prefer: Specifiers already imported by the file, tried first
            
        Returns:
            Import specifier, or None when the name is not a known export
        """
        for specifier in prefer:
            entry = self.get(specifier)
            if entry and name in entry.exports:
                return specifier
        if name in FRAMER_MOTION_EXPORTS:
            return "framer-motion"
        if name in REACT_JSX_EXPORTS:
            return "react"
        if name in PHOSPHOR_ICONS:
            return DEFAULT_ICON_MODULE
        for entry in self._entries:
            if entry.kind == "icons" and name in entry.exports:
                return entry.module
        return None
    
    def script_urls(self) -> List[str]:
        """Scripts the preview document must load, in dependency order."""
        return [entry.script_url for entry in self._entries if entry.script_url]
    
    def runtime_table(self) -> Dict[str, Dict[str, Optional[str]]]:
        """Specifier -> {global, kind}, embedded in the preview document."""
        return {specifier: entry.to_runtime() for specifier, entry in self._by_specifier.items()}
    
    def resolution_order(self) -> List[str]:
        """Canonical specifiers in the order free identifiers are looked up."""
        return [entry.module for entry in self._entries]


# Global registry instance
_registry: Optional[LibraryRegistry] = None


def get_registry() -> LibraryRegistry:
    """Get the global library registry instance."""
    global _registry
    if _registry is None:
        _registry = LibraryRegistry()
    return _registry
